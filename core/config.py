from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    DATABASE_URL: str = Field(..., description="Async connection string (postgresql+asyncpg://...)")
    STORAGE_TIMEOUT_SECONDS: float = Field(10.0, description="Upper bound for a single storage operation")
    STORAGE_READ_RETRIES: int = Field(2, description="Extra attempts for idempotent reads")

    # Redis
    REDIS_URL: str = Field("redis://localhost:6379/0")

    # Auth
    AUTH_SECRET: str = Field("change-me", description="HMAC secret shared with the auth provider")
    TOKEN_TTL_SECONDS: int = 86400  # 1 day

    # Quiz Settings
    MAX_QUESTIONS_PER_QUIZ: int = 100
    JOIN_CODE_LENGTH: int = 6
    JOIN_CODE_ATTEMPTS: int = 5
    PASS_THRESHOLD_PERCENT: float = 60.0
    ALLOW_MULTIPLE_ATTEMPTS: bool = Field(True, description="Allow a student to submit the same quiz more than once")

    # AI Quiz Generation (Groq)
    GROQ_API_KEY: str = Field("", description="Groq API key for AI quiz generation")
    GROQ_MODEL: str = Field("llama-3.3-70b-versatile", description="Groq model to use")
    AI_REQUEST_TIMEOUT_SECONDS: float = 60.0
    AI_GENERATION_COOLDOWN_SECONDS: int = 30

    # Environment
    ENV: str = "production"  # development, staging, production
    DEBUG: bool = False
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

settings = Settings()
