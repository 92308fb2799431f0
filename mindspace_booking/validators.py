"""Input validation using Pydantic models."""

import re
from datetime import date
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from mindspace_booking.errors import ValidationError

TIME_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)(:[0-5]\d)?$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MINIMUM_THERAPIST_AGE = 18


def parse_input(model: type[BaseModel], **data) -> BaseModel:
    """Build ``model`` from ``data``, converting failures to ValidationError.

    The first violated rule is reported together with the field it concerns.
    """
    try:
        return model(**data)
    except PydanticValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or None
        message = error["msg"].removeprefix("Value error, ")
        raise ValidationError(message, field=field) from None


def normalize_time(value: str | None) -> str | None:
    """Normalize H:MM, HH:MM or HH:MM:SS to HH:MM."""
    if value is None:
        return None
    match = TIME_PATTERN.match(str(value).strip())
    if not match:
        raise ValueError("time must be in HH:MM format")
    hours, minutes = match.group(1), match.group(2)
    return f"{int(hours):02d}:{minutes}"


def is_valid_https_url(url: str | None) -> bool:
    """True for absolute https:// URLs with a host."""
    if not url:
        return False
    parsed = urlparse(url.strip())
    return parsed.scheme == "https" and bool(parsed.netloc)


def calculate_age(date_of_birth: date, today: date | None = None) -> int:
    today = today or date.today()
    age = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


def _not_in_past(value: date, label: str) -> date:
    if value < date.today():
        raise ValueError(f"{label} cannot be in the past")
    return value


class BookingRequest(BaseModel):
    """A patient's request for a session with a therapist."""

    therapist_id: str = Field(..., min_length=1)
    session_date: date
    start_time: str
    end_time: str | None = None
    problem_description: str | None = None

    @field_validator("session_date")
    @classmethod
    def session_date_not_in_past(cls, v):
        return _not_in_past(v, "session date")

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def normalize_times(cls, v):
        return normalize_time(v)

    @model_validator(mode="after")
    def end_after_start(self):
        if self.end_time is not None and self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class RescheduleRequest(BaseModel):
    """A proposed new date and start time for a booking."""

    new_date: date
    new_time: str
    reason: str | None = None

    @field_validator("new_date")
    @classmethod
    def new_date_not_in_past(cls, v):
        return _not_in_past(v, "proposed date")

    @field_validator("new_time", mode="before")
    @classmethod
    def normalize_new_time(cls, v):
        return normalize_time(v)


class MeetingLinkUpdate(BaseModel):
    meeting_link: str | None = None

    @field_validator("meeting_link")
    @classmethod
    def https_only(cls, v):
        if v is None:
            return None
        if not is_valid_https_url(v):
            raise ValueError("meeting link must be an https:// URL")
        return v.strip()


class TherapistUpdate(BaseModel):
    """Display fields a therapist (or an admin) may edit."""

    name: str | None = Field(None, min_length=1)
    phone: str | None = None
    specialization: str | None = Field(None, min_length=1)
    fee: int | None = Field(None, ge=0)
    bio: str | None = None
    experience: int | None = Field(None, ge=0)
    license: str | None = None


class TherapistSignup(TherapistUpdate):
    """Fields collected when a therapist registers for the directory."""

    name: str = Field(..., min_length=1)
    email: str
    specialization: str = Field(..., min_length=1)
    fee: int = Field(..., ge=0)
    date_of_birth: date | None = None

    @field_validator("email")
    @classmethod
    def valid_email(cls, v):
        v = v.strip()
        if not EMAIL_PATTERN.match(v):
            raise ValueError("email address is not valid")
        return v

    @field_validator("date_of_birth")
    @classmethod
    def adult_therapist(cls, v):
        if v is not None and calculate_age(v) < MINIMUM_THERAPIST_AGE:
            raise ValueError(f"therapists must be at least {MINIMUM_THERAPIST_AGE} years old")
        return v
