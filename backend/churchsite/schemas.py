from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

INVALID_ACTION_MESSAGE = "Invalid action. Must be login, signup, or reset"


class AuthAction(str, Enum):
    login = "login"
    signup = "signup"
    reset = "reset"


class RateLimitRequest(BaseModel):
    # Passed through for logging only; never validated.
    email: Any = None
    action: AuthAction


class RateLimitAllowed(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    allowed: Literal[True] = True
    remaining_attempts: int = Field(alias="remainingAttempts")


class RateLimitDenied(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    allowed: Literal[False] = False
    message: str
    retry_after: int = Field(alias="retryAfter")


class ErrorBody(BaseModel):
    error: str
