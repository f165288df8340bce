"""
Security helpers for input validation, escaping and token generation.
"""

import hmac
import re
import secrets
from typing import Any, Callable, Dict, List

VALIDATION_PATTERNS = {
    "email": re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"),
    "stock_symbol": re.compile(r"^[A-Z]{1,5}$"),
    "username": re.compile(r"^[a-zA-Z0-9_-]{3,20}$"),
    "phone": re.compile(r"^\+?[\d\s\-()]{10,15}$"),
}

PASSWORD_SPECIAL_CHARACTERS = "@$!%*?&"

_HTML_ESCAPES = str.maketrans(
    {
        "&": "&amp;",
        "<": "&lt;",
        ">": "&gt;",
        '"': "&quot;",
        "'": "&#x27;",
        "/": "&#x2F;",
    }
)

_CONTROL_CHARACTERS = re.compile(r"[\x00-\x1f\x7f]")


def escape_html(text: str) -> str:
    """HTML-entity encode the characters that matter inside markup and attributes."""
    return text.translate(_HTML_ESCAPES)


def strip_control_characters(value: str) -> str:
    """Drop null bytes and other control characters, then trim whitespace."""
    return _CONTROL_CHARACTERS.sub("", value).strip()


def sanitize_input(value: Any) -> str:
    """Sanitize user input for display: strip control characters and escape HTML."""
    if not value or not isinstance(value, str):
        return ""
    return escape_html(strip_control_characters(value))


def password_problems(password: str) -> List[str]:
    """List the strength rules a password breaks; empty when it is acceptable."""
    errors: List[str] = []
    if not password or len(password) < 8:
        errors.append("Password must be at least 8 characters long")
    if not re.search(r"[a-z]", password or ""):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", password or ""):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"\d", password or ""):
        errors.append("Password must contain at least one number")
    if not any(c in PASSWORD_SPECIAL_CHARACTERS for c in password or ""):
        errors.append(
            f"Password must contain at least one special character ({PASSWORD_SPECIAL_CHARACTERS})"
        )
    return errors


def _pattern_validator(kind: str) -> Callable[[str], bool]:
    pattern = VALIDATION_PATTERNS[kind]
    return lambda value: bool(pattern.match(value))


VALIDATORS: Dict[str, Callable[[str], bool]] = {
    "email": _pattern_validator("email"),
    "password": lambda value: not password_problems(value),
    "stock_symbol": _pattern_validator("stock_symbol"),
    "username": _pattern_validator("username"),
    "phone": _pattern_validator("phone"),
}


def validate_input(value: Any, kind: str) -> bool:
    """Check a field value against one of the named validators.

    Raises:
        ValueError: if ``kind`` is not a known validator.
    """
    if kind not in VALIDATORS:
        raise ValueError(f"Unknown validation type: {kind}")
    if not value or not isinstance(value, str):
        return False
    return VALIDATORS[kind](strip_control_characters(value))


def generate_secure_token(num_bytes: int = 32) -> str:
    """Random hex token, two characters per byte."""
    return secrets.token_hex(num_bytes)


def generate_request_id() -> str:
    return generate_secure_token(16)


def generate_csrf_token() -> str:
    return generate_secure_token(32)


def validate_csrf_token(token: str, stored_token: str) -> bool:
    """Compare CSRF tokens in constant time."""
    if not token or not stored_token:
        return False
    return hmac.compare_digest(token.encode("utf-8"), stored_token.encode("utf-8"))
