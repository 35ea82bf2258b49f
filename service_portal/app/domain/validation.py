"""
Request models and input validation for the portal API.

Body validation failures surface through FastAPI's ``RequestValidationError``
and are rendered by the base service as 400 responses with per-field messages.
"""

import re
from typing import Optional

from pydantic import BaseModel, Field, ValidationInfo, field_validator

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{0,15}$")

MAX_QUESTION_LENGTH = 500

NOTICE_CATEGORIES = (
    "General",
    "Academic",
    "Events",
    "Placements",
    "Admissions",
    "Sports",
    "Clubs",
    "Facilities",
    "Announcements",
    "Urgent",
)

_UNSAFE_MARKUP = [
    re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE),
    re.compile(r"<iframe\b[^<]*(?:(?!</iframe>)<[^<]*)*</iframe>", re.IGNORECASE),
    re.compile(r"<object\b[^<]*(?:(?!</object>)<[^<]*)*</object>", re.IGNORECASE),
    re.compile(r"<embed\b[^>]*>", re.IGNORECASE),
    re.compile(r"<form\b[^<]*(?:(?!</form>)<[^<]*)*</form>", re.IGNORECASE),
    re.compile(r"\son\w+\s*=\s*(\"[^\"]*\"|'[^']*'|[^\s>]+)", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
]


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match(value))


def is_valid_phone(value: str) -> bool:
    return bool(PHONE_PATTERN.match(value))


def sanitize_html(value: str) -> str:
    """Strip script-capable markup from admin-authored HTML."""
    for pattern in _UNSAFE_MARKUP:
        value = pattern.sub("", value)
    return value


def _required(value: Optional[str], field: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        raise ValueError(f"{field} is required")
    return stripped


def _optional(value: Optional[str]) -> str:
    return (value or "").strip()


class ChatRequest(BaseModel):
    """Question posted to the assistant."""
    question: str = Field(..., description="Question text")
    user_email: Optional[str] = Field(None, description="Asker email")
    user_name: Optional[str] = Field(None, description="Asker display name")

    @field_validator("question")
    @classmethod
    def check_question(cls, value: str) -> str:
        value = _required(value, "question")
        if len(value) > MAX_QUESTION_LENGTH:
            raise ValueError(f"Question too long (max {MAX_QUESTION_LENGTH} characters)")
        return value

    @field_validator("user_email")
    @classmethod
    def check_email(cls, value: Optional[str]) -> Optional[str]:
        value = _optional(value)
        if value and not is_valid_email(value):
            raise ValueError("Invalid email format")
        return value or None


class FeedbackRequest(BaseModel):
    """Rating of a previous answer."""
    rating: int = Field(..., description="Rating from 1 to 5")
    feedback: Optional[str] = Field(None, description="Free-text feedback")
    question: Optional[str] = Field(None, description="Question being rated")
    user_email: Optional[str] = Field(None, description="Rater email")

    @field_validator("rating")
    @classmethod
    def check_rating(cls, value: int) -> int:
        if value < 1 or value > 5:
            raise ValueError("Rating must be between 1 and 5")
        return value


class RegistrationRequest(BaseModel):
    """Event registration form."""
    event_id: str = Field(..., description="Target event id")
    name: str = Field(..., description="Registrant name")
    email: str = Field(..., description="Registrant email")
    phone: Optional[str] = Field(None, description="Contact number", validate_default=True)
    department: Optional[str] = Field(None, description="Department", validate_default=True)
    year: Optional[str] = Field(None, description="Year of study", validate_default=True)
    additional_info: Optional[str] = Field(None, description="Anything else", validate_default=True)

    @field_validator("event_id")
    @classmethod
    def check_event_id(cls, value: Optional[str]) -> str:
        return _required(value, "event_id")

    @field_validator("name")
    @classmethod
    def check_name(cls, value: Optional[str]) -> str:
        value = _required(value, "name")
        if len(value) < 2:
            raise ValueError("Name must be at least 2 characters long")
        return value

    @field_validator("email")
    @classmethod
    def check_email(cls, value: Optional[str]) -> str:
        value = _required(value, "email")
        if not is_valid_email(value):
            raise ValueError("Invalid email format")
        return value.lower()

    @field_validator("phone")
    @classmethod
    def check_phone(cls, value: Optional[str]) -> str:
        value = _optional(value)
        if value and not is_valid_phone(value):
            raise ValueError("Invalid phone number format")
        return value

    @field_validator("department", "year", "additional_info")
    @classmethod
    def strip_optional(cls, value: Optional[str]) -> str:
        return _optional(value)


class EventCreateRequest(BaseModel):
    """Admin event creation."""
    title: str = Field(..., description="Event title")
    description: str = Field(..., description="Event description (HTML allowed)")
    date_iso: str = Field(..., description="Start time, ISO-8601")
    location: str = Field(..., description="Venue")
    rsvp_form: Optional[str] = Field(None, description="External RSVP link")
    visible: bool = Field(True, description="Listed publicly")

    @field_validator("title", "date_iso", "location")
    @classmethod
    def check_required(cls, value: str, info: ValidationInfo) -> str:
        return _required(value, info.field_name)

    @field_validator("description")
    @classmethod
    def check_description(cls, value: Optional[str]) -> str:
        return sanitize_html(_required(value, "description"))

    @field_validator("rsvp_form")
    @classmethod
    def strip_rsvp(cls, value: Optional[str]) -> str:
        return _optional(value)


class NoticeCreateRequest(BaseModel):
    """Admin notice creation."""
    title: str = Field(..., description="Notice title")
    body_html: str = Field(..., description="Notice body (HTML allowed)")
    category: str = Field(..., description="One of the notice categories")
    posted_at_iso: Optional[str] = Field(None, description="Posting time, defaults to now")
    visible: bool = Field(True, description="Listed publicly")

    @field_validator("title")
    @classmethod
    def check_title(cls, value: Optional[str]) -> str:
        return _required(value, "title")

    @field_validator("body_html")
    @classmethod
    def check_body(cls, value: Optional[str]) -> str:
        return sanitize_html(_required(value, "body_html"))

    @field_validator("category")
    @classmethod
    def check_category(cls, value: Optional[str]) -> str:
        value = _required(value, "category")
        if value not in NOTICE_CATEGORIES:
            raise ValueError(f"Invalid category. Must be one of: {', '.join(NOTICE_CATEGORIES)}")
        return value

    @field_validator("posted_at_iso")
    @classmethod
    def strip_posted_at(cls, value: Optional[str]) -> Optional[str]:
        return _optional(value) or None


class LoginRequest(BaseModel):
    """Admin login with the shared key."""
    api_key: str = Field(..., description="Admin API key")

    @field_validator("api_key")
    @classmethod
    def check_api_key(cls, value: Optional[str]) -> str:
        return _required(value, "api_key")
