"""Outbound email models."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EmailTemplate(str, Enum):
    """Auth emails the service knows how to render."""

    WELCOME = "welcome"
    VERIFY_EMAIL = "verify_email"
    FORGOT_PASSWORD = "forgot_password"
    RESET_PASSWORD = "reset_password"


class EmailJob(BaseModel):
    """A queued delivery request."""

    to: str
    template: EmailTemplate
    variables: dict[str, Any] = Field(default_factory=dict)
    enqueued_at: datetime
