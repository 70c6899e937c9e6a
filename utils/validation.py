import re

from security.errors import ValidationError

_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_email(value) -> str:
    return (value or "").strip().lower() if isinstance(value, str) else ""


def require_email(value) -> str:
    """Return the normalized email or raise ValidationError."""
    email = normalize_email(value)
    if not email or len(email) > 255 or not _EMAIL.match(email):
        raise ValidationError("Invalid email")
    return email


def require_account_id(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError("Invalid account id")
    return value


def require_count(value, name: str, minimum: int = 0, maximum=None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer")
    if value < minimum:
        raise ValidationError(f"{name} must be at least {minimum}")
    if maximum is not None and value > maximum:
        raise ValidationError(f"{name} must be at most {maximum}")
    return value
