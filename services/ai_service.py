import json
import httpx
from typing import List, Dict, Optional, Tuple
from core.config import settings
from core.logger import logger
from pydantic import ValidationError as SchemaError
from schemas.quiz import DIFFICULTIES, OPTIONS_PER_QUESTION, Question


SYSTEM_PROMPT = """You are an expert quiz generator. Create a multiple-choice quiz based on the user's prompt.
Each question must have {options} distinct options and exactly one correct answer.
Questions must be of {difficulty} difficulty.

Return ONLY the following JSON object, nothing else:
{{
  "questions": [
    {{
      "question": "What does JavaScript primarily add to HTML pages?",
      "options": ["Styling", "Structure", "Interactivity", "SEO Optimization"],
      "answer": "Interactivity"
    }}
  ]
}}

"answer" must be copied exactly from "options"."""


class AIService:
    """Service for AI-powered quiz drafting using the Groq API."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self.api_key = settings.GROQ_API_KEY
        self.model = settings.GROQ_MODEL
        self.base_url = "https://api.groq.com/openai/v1/chat/completions"
        self.client = client

    def _log_rate_limits(self, headers: httpx.Headers):
        """Extract and log Groq rate limit information."""
        remaining_requests = headers.get("x-ratelimit-remaining-requests")
        remaining_tokens = headers.get("x-ratelimit-remaining-tokens")

        if remaining_requests or remaining_tokens:
            logger.info(
                "Groq rate limits",
                rem_req=remaining_requests,
                rem_tok=remaining_tokens,
                reset_req=headers.get("x-ratelimit-reset-requests"),
                reset_tok=headers.get("x-ratelimit-reset-tokens")
            )

    async def generate_quiz(self, subject: str, difficulty: str, num_questions: int,
                            prompt: str) -> Tuple[List[Dict], Optional[str]]:
        """
        Draft quiz questions for a subject. Returns (questions, error); on
        failure questions is empty and error says why.
        """
        if not self.api_key:
            return [], "GROQ_API_KEY is not configured"
        if difficulty not in DIFFICULTIES:
            return [], f"Unknown difficulty: {difficulty}"
        if num_questions <= 0 or num_questions > settings.MAX_QUESTIONS_PER_QUIZ:
            return [], f"Number of questions must be between 1 and {settings.MAX_QUESTIONS_PER_QUIZ}"

        system_prompt = SYSTEM_PROMPT.format(options=OPTIONS_PER_QUESTION, difficulty=difficulty)
        user_prompt = (
            f'Generate a quiz on the subject of "{subject}".\n'
            f"The quiz should have {num_questions} questions.\n"
            f'Here is the specific topic/prompt: "{prompt}"'
        )

        client = self.client or httpx.AsyncClient(timeout=settings.AI_REQUEST_TIMEOUT_SECONDS)
        try:
            response = await client.post(
                self.base_url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json"
                },
                json={
                    "model": self.model,
                    "messages": [
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_prompt}
                    ],
                    "response_format": {"type": "json_object"},
                    "temperature": 0.7,
                    "max_completion_tokens": 4096
                }
            )
        except httpx.HTTPError as e:
            logger.error("Groq request failed", error=str(e))
            return [], "Failed to generate quiz. Please try again."
        finally:
            if self.client is None:
                await client.aclose()

        self._log_rate_limits(response.headers)

        if response.status_code != 200:
            logger.error("Groq API error", status=response.status_code, error=response.text[:500])
            return [], f"API error: {response.status_code}"

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.error("Unexpected Groq response shape", error=str(e))
            return [], "Failed to generate quiz. Unexpected response from AI."

        questions, error = self._parse_response(content)
        if error:
            return [], error

        logger.info("AI quiz generated", subject=subject, difficulty=difficulty, total=len(questions))
        return questions[:num_questions], None

    def _parse_response(self, content: str) -> Tuple[List[Dict], Optional[str]]:
        """Parse and validate {"questions": [...]}, tolerating a markdown code fence."""
        cleaned = content.strip()
        if cleaned.startswith("```json"):
            cleaned = cleaned[len("```json"):]
        elif cleaned.startswith("```"):
            cleaned = cleaned[3:]
        if cleaned.endswith("```"):
            cleaned = cleaned[:-3]
        cleaned = cleaned.strip()

        try:
            parsed = json.loads(cleaned)
        except json.JSONDecodeError:
            logger.error("Failed to parse AI response", content=content[:500])
            return [], "Invalid quiz format received from AI: not valid JSON."

        if not isinstance(parsed, dict) or not isinstance(parsed.get("questions"), list) or not parsed["questions"]:
            return [], "Invalid quiz format received from AI: missing questions array."

        questions = []
        for index, q in enumerate(parsed["questions"]):
            try:
                questions.append(Question.model_validate(q))
            except SchemaError as e:
                logger.error("AI question failed validation", index=index, question=q, error=str(e))
                return [], (
                    f"Invalid question format for question {index}. Each question must have a 'question' string, "
                    f"'options' array of {OPTIONS_PER_QUESTION} distinct strings, and an 'answer' that is one of the options."
                )

        return [q.to_document() for q in questions], None
