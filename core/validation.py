"""
Input Validation Utilities.

Request models accept loosely-typed optional fields so that a missing value
can be reported as a 400 `ValidationError` naming the field, rather than a
framework-level 422. The helpers here do that checking and normalization.
"""

import re
from typing import Any, List, Optional, Tuple
from urllib.parse import urlparse

from core.exceptions import ValidationError
from core.logging_config import get_logger

logger = get_logger(__name__)

MAX_COMMENT_LENGTH = 2000
MAX_PAGE_SIZE = 50
MAX_TAG_LENGTH = 50


class InputValidator:
    """Validation and normalization of request input"""

    EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
    USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_.-]{3,30}$")
    CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

    @staticmethod
    def require_id(field: str, value: Any) -> str:
        """A non-empty identifier"""
        if value is None or not isinstance(value, str) or not value.strip():
            raise ValidationError(field, f"{field} is required")
        return value.strip()

    @staticmethod
    def clean_text(field: str, value: Any, max_length: int = MAX_COMMENT_LENGTH) -> str:
        """Required free text: trimmed, non-empty, bounded, no control characters"""
        if value is None or not isinstance(value, str):
            raise ValidationError(field, f"{field} is required")

        value = InputValidator.CONTROL_CHARS.sub("", value).strip()
        if not value:
            raise ValidationError(field, f"{field} is required")
        if len(value) > max_length:
            raise ValidationError(
                field, f"{field} must be no more than {max_length} characters"
            )
        return value

    @staticmethod
    def optional_text(
        field: str, value: Optional[str], max_length: int = MAX_COMMENT_LENGTH
    ) -> Optional[str]:
        if value is None:
            return None
        value = InputValidator.CONTROL_CHARS.sub("", value).strip()
        if len(value) > max_length:
            raise ValidationError(
                field, f"{field} must be no more than {max_length} characters"
            )
        return value

    @staticmethod
    def validate_username(username: str) -> str:
        """Validate username"""
        username = (username or "").strip()
        if not InputValidator.USERNAME_PATTERN.match(username):
            raise ValidationError(
                "username",
                "Username must be 3-30 characters and contain only letters, numbers, dots, hyphens, and underscores",
                username,
            )
        return username

    @staticmethod
    def validate_email(email: str) -> str:
        """Validate email address"""
        email = (email or "").strip()
        if len(email) > 254 or not InputValidator.EMAIL_PATTERN.match(email):
            raise ValidationError("email", "Invalid email format", email)
        return email.lower()

    @staticmethod
    def validate_url(url: Any, allowed_schemes: List[str] = None) -> str:
        """Validate an http(s) URL"""
        if allowed_schemes is None:
            allowed_schemes = ["http", "https"]

        url = InputValidator.require_id("url", url)
        if len(url) > 2048:
            raise ValidationError("url", "URL is too long")

        parsed = urlparse(url)
        if parsed.scheme not in allowed_schemes:
            raise ValidationError(
                "url",
                f"URL scheme must be one of: {', '.join(allowed_schemes)}",
                url,
            )
        if not parsed.netloc:
            raise ValidationError("url", "URL must include a valid domain", url)
        return url

    @staticmethod
    def validate_tags(tags: Optional[List[str]]) -> List[str]:
        if not tags:
            return []
        cleaned = []
        for tag in tags:
            if not isinstance(tag, str):
                raise ValidationError("tags", "Tags must be strings")
            tag = tag.strip().lstrip("#").lower()[:MAX_TAG_LENGTH]
            if tag and tag not in cleaned:
                cleaned.append(tag)
        return cleaned

    @staticmethod
    def validate_pagination(
        page: int, limit: int, max_limit: int = MAX_PAGE_SIZE
    ) -> Tuple[int, int]:
        """Clamp paging parameters; returns (page, limit)"""
        if page < 1:
            raise ValidationError("page", "page must be at least 1", page)
        if limit < 1:
            raise ValidationError("limit", "limit must be at least 1", limit)
        return page, min(limit, max_limit)
