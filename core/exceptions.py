class QuizRoomError(Exception):
    """Base class for errors that are reported back to the caller."""
    status_code = 500
    default_message = "Unexpected error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(QuizRoomError):
    """Missing or malformed input. Not retryable."""
    status_code = 400
    default_message = "Invalid request"


class NotFoundError(QuizRoomError):
    status_code = 404
    default_message = "Not found"


class AuthorizationError(QuizRoomError):
    """The actor does not own the resource.

    The message is always generic so the response does not reveal whether
    the resource exists.
    """
    status_code = 403
    default_message = "Not permitted"

    def __init__(self, message: str = None):
        super().__init__(self.default_message)


class DuplicateSubmissionError(QuizRoomError):
    status_code = 409
    default_message = "You have already submitted this quiz"


class RateLimitError(QuizRoomError):
    status_code = 429
    default_message = "Too many requests. Please wait a moment."


class DependencyError(QuizRoomError):
    """Storage or an external API failed. Safe to retry for reads."""
    status_code = 503
    default_message = "Service temporarily unavailable, please try again"
