"""
Centralized Pydantic Input Validation Layer

Validation Categories:
1. Profile name - sanitized, 1-100 chars, letters/spaces/hyphens/apostrophes
2. Password change - strength rules and confirmation match
3. Avatar image - max 5MB, JPEG/PNG/WebP/GIF only

Helpers raise ecoquest.exceptions.ValidationError so callers handle a
single error type regardless of which model rejected the input.
"""

import logging
import re
from typing import ClassVar
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from ecoquest.exceptions import ValidationError

logger = logging.getLogger(__name__)

MAX_AVATAR_BYTES = 5 * 1024 * 1024
ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/webp", "image/gif")

_HTML_BRACKETS = re.compile(r"[<>]")
_JS_PROTOCOL = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+=", re.IGNORECASE)


def sanitize_input(value: str) -> str:
    """Strip markup fragments that could be rendered as HTML/JS"""
    value = _HTML_BRACKETS.sub("", value)
    value = _JS_PROTOCOL.sub("", value)
    value = _EVENT_HANDLER.sub("", value)
    return value.strip()


# ============================================================================
# PROFILE NAME
# ============================================================================

class ProfileNameInput(BaseModel):
    """Validated display name"""
    full_name: str = Field(..., max_length=100)

    NAME_PATTERN: ClassVar[re.Pattern] = re.compile(r"^[a-zA-Z\s'-]+$")

    @field_validator("full_name", mode="before")
    @classmethod
    def sanitize(cls, v: str) -> str:
        if not isinstance(v, str):
            raise ValueError("Name must be text")
        return sanitize_input(v)

    @field_validator("full_name")
    @classmethod
    def validate_characters(cls, v: str) -> str:
        if not v:
            raise ValueError("Name cannot be empty")
        if not cls.NAME_PATTERN.match(v):
            raise ValueError("Name can only contain letters, spaces, hyphens and apostrophes")
        return v


# ============================================================================
# PASSWORD CHANGE
# ============================================================================

class PasswordUpdateInput(BaseModel):
    """Password change form"""
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8)
    confirm_password: str = Field(..., min_length=1)

    @field_validator("new_password")
    @classmethod
    def validate_strength(cls, v: str) -> str:
        if not (re.search(r"[a-z]", v) and re.search(r"[A-Z]", v) and re.search(r"\d", v)):
            raise ValueError(
                "Password must contain at least one uppercase letter, one lowercase letter, and one number"
            )
        return v

    @model_validator(mode="after")
    def passwords_match(self) -> "PasswordUpdateInput":
        if self.new_password != self.confirm_password:
            raise ValueError("Passwords don't match")
        return self


# ============================================================================
# AVATAR IMAGE
# ============================================================================

class ImageUpload(BaseModel):
    """An avatar image ready for object storage"""
    filename: str = Field(..., min_length=1)
    content_type: str
    data: bytes

    @field_validator("content_type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        v = v.lower()
        if v not in ALLOWED_IMAGE_TYPES:
            raise ValueError("Only JPEG, PNG, WebP and GIF images are allowed")
        return v

    @field_validator("data")
    @classmethod
    def validate_size(cls, v: bytes) -> bytes:
        if not v:
            raise ValueError("Image is empty")
        if len(v) > MAX_AVATAR_BYTES:
            raise ValueError("Image must be smaller than 5MB")
        return v

    @property
    def extension(self) -> str:
        return self.content_type.split("/", 1)[1].replace("jpeg", "jpg")


# ============================================================================
# Helpers
# ============================================================================

def _first_error(error: PydanticValidationError) -> tuple[str, str]:
    issue = error.errors()[0]
    field = ".".join(str(part) for part in issue.get("loc", ())) or "input"
    message = issue.get("msg", "Invalid input").removeprefix("Value error, ")
    return field, message


def validate_profile_name(name: str) -> str:
    """Sanitize and validate a display name, returning the cleaned value"""
    try:
        return ProfileNameInput(full_name=name).full_name
    except PydanticValidationError as e:
        field, message = _first_error(e)
        raise ValidationError(message, field=field, value=name)


def validate_password_update(current_password: str, new_password: str, confirm_password: str) -> PasswordUpdateInput:
    try:
        return PasswordUpdateInput(
            current_password=current_password,
            new_password=new_password,
            confirm_password=confirm_password,
        )
    except PydanticValidationError as e:
        field, message = _first_error(e)
        # Never echo passwords into logs
        raise ValidationError(message, field=field)


def validate_image(filename: str, content_type: str, data: bytes) -> ImageUpload:
    """Validate an avatar image before upload"""
    try:
        return ImageUpload(filename=filename, content_type=content_type, data=data)
    except PydanticValidationError as e:
        field, message = _first_error(e)
        raise ValidationError(message, field=field, value=f"{content_type}, {len(data)} bytes")
