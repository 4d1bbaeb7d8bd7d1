"""
Input Validation Utilities.

Validation rules shared by the services and the HTTP layer. Every check raises
`core.exceptions.ValidationError` with the offending field name, so the HTTP
layer reports it as a 400 without further translation.

Services validate their own inputs even when the request models already did:
the rules must hold for every caller, not only for HTTP requests.
"""

import re
from typing import Any, Optional, Tuple
from urllib.parse import urlparse

from core.exceptions import ValidationError
from core.logging_config import get_logger
from core.models import (
    ACTIVITY_TYPES,
    RATING_MAX,
    RATING_MIN,
    REVIEW_MAX_LENGTH,
)

logger = get_logger(__name__)

CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


class InputValidator:
    """Validation and normalisation of user-supplied values"""

    EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
    USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{3,50}$")

    PASSWORD_MIN_LENGTH = 8
    PASSWORD_MAX_LENGTH = 128
    SEARCH_QUERY_MAX_LENGTH = 100

    @staticmethod
    def sanitize_string(value: Any, field: str = "input", max_length: int = 1000) -> str:
        """Trim, strip control characters and bound the length of a string"""
        if not isinstance(value, str):
            raise ValidationError(field, value, "Must be a string")

        value = CONTROL_CHARS.sub("", value).strip()

        if len(value) > max_length:
            raise ValidationError(
                field, value[:50], f"Must be no more than {max_length} characters"
            )

        return value

    @staticmethod
    def validate_email(email: str) -> str:
        email = InputValidator.sanitize_string(email, "email", max_length=255)
        if not InputValidator.EMAIL_PATTERN.match(email):
            raise ValidationError("email", email, "Invalid email format")
        return email.lower()

    @staticmethod
    def validate_username(username: str) -> str:
        username = InputValidator.sanitize_string(username, "username", max_length=50)
        if not InputValidator.USERNAME_PATTERN.match(username):
            raise ValidationError(
                "username",
                username,
                "Username must be 3-50 characters and contain only letters, numbers, underscores, and hyphens",
            )
        return username

    @staticmethod
    def validate_password(password: str) -> str:
        """Enforce length and character-class rules. Never echoes the value."""
        if not isinstance(password, str):
            raise ValidationError("password", "***", "Must be a string")

        if len(password) < InputValidator.PASSWORD_MIN_LENGTH:
            raise ValidationError(
                "password", "***", "Password must be at least 8 characters long"
            )

        if len(password) > InputValidator.PASSWORD_MAX_LENGTH:
            raise ValidationError(
                "password", "***", "Password must be no more than 128 characters long"
            )

        has_upper = any(c.isupper() for c in password)
        has_lower = any(c.islower() for c in password)
        has_digit = any(c.isdigit() for c in password)

        if not (has_upper and has_lower and has_digit):
            raise ValidationError(
                "password",
                "***",
                "Password must contain at least one uppercase letter, one lowercase letter, and one number",
            )

        return password

    @staticmethod
    def validate_rating(rating: Any) -> int:
        """Ratings are integers in [1, 5]; bools and floats are rejected"""
        if isinstance(rating, bool) or not isinstance(rating, int):
            raise ValidationError("rating", rating, "Rating must be an integer")
        if rating < RATING_MIN or rating > RATING_MAX:
            raise ValidationError(
                "rating", rating, f"Rating must be between {RATING_MIN} and {RATING_MAX}"
            )
        return rating

    @staticmethod
    def validate_review_content(content: Any) -> str:
        content = InputValidator.sanitize_string(
            content, "content", max_length=REVIEW_MAX_LENGTH
        )
        if not content:
            raise ValidationError("content", content, "Review content cannot be empty")
        return content

    @staticmethod
    def validate_activity_type(activity_type: Any) -> str:
        if activity_type not in ACTIVITY_TYPES:
            raise ValidationError(
                "type",
                activity_type,
                f"Activity type must be one of: {', '.join(ACTIVITY_TYPES)}",
            )
        return activity_type

    @staticmethod
    def validate_search_query(query: Any) -> str:
        query = InputValidator.sanitize_string(
            query, "q", max_length=InputValidator.SEARCH_QUERY_MAX_LENGTH
        )
        if not query:
            raise ValidationError("q", query, "Search query is required")
        return query

    @staticmethod
    def validate_limit(limit: Any, maximum: int, field: str = "limit") -> int:
        if isinstance(limit, bool) or not isinstance(limit, int):
            raise ValidationError(field, limit, "Must be an integer")
        if limit < 1 or limit > maximum:
            raise ValidationError(field, limit, f"Must be between 1 and {maximum}")
        return limit

    @staticmethod
    def validate_pagination(
        limit: int, offset: int = 0, maximum: int = 100
    ) -> Tuple[int, int]:
        limit = InputValidator.validate_limit(limit, maximum)
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
            raise ValidationError("offset", offset, "Offset must be a non-negative integer")
        return limit, offset

    @staticmethod
    def validate_page(page: Any) -> int:
        if isinstance(page, bool) or not isinstance(page, int) or page < 1:
            raise ValidationError("page", page, "Page must be a positive integer")
        return page

    @staticmethod
    def validate_url(url: Optional[str], field: str = "url") -> Optional[str]:
        """Validate an optional http(s) URL; empty strings clear the value"""
        if url is None:
            return None
        url = InputValidator.sanitize_string(url, field, max_length=1024)
        if not url:
            return None
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError(field, url, "Must be an http or https URL")
        return url
