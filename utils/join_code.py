import uuid
from core.config import settings

def generate_join_code(length: int = None) -> str:
    """Short upper-case room code, e.g. '3FA9C1'."""
    length = length or settings.JOIN_CODE_LENGTH
    return uuid.uuid4().hex[:length].upper()

def normalize_join_code(code: str) -> str:
    return (code or "").strip().upper()
