"""Input validation for caller-supplied codes and recovery tokens.

Uses Pydantic models and converts any ``ValidationError`` into a
:class:`~cqrs_ddd_mfa.exceptions.UserInputError` with ``{field: [messages]}``.
"""

from __future__ import annotations

import re
from typing import TypeVar

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import ValidationError as PydanticValidationError

from .exceptions import UserInputError

# secrets.token_urlsafe(32) -> 43 characters of URL-safe base64
RECOVERY_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_-]{43}$")
VERIFICATION_CODE_PATTERN = re.compile(r"^[0-9]{6}$")
GROUPED_CODE_PATTERN = re.compile(r"([0-9]{3})[ -]([0-9]{3})")

M = TypeVar("M", bound=BaseModel)


class VerificationCodeInput(BaseModel):
    """A TOTP code typed by the user.

    Surrounding whitespace and one separator between the two groups of three
    ("123 456", "123-456") are tolerated.
    """

    model_config = ConfigDict(frozen=True)

    code: str

    @field_validator("code", mode="before")
    @classmethod
    def _normalize(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        value = value.strip()
        grouped = GROUPED_CODE_PATTERN.fullmatch(value)
        return "".join(grouped.groups()) if grouped else value

    @field_validator("code")
    @classmethod
    def _six_digits(cls, value: str) -> str:
        if not value:
            raise ValueError("Missing verification code")
        if not VERIFICATION_CODE_PATTERN.fullmatch(value):
            raise ValueError("Verification code must be 6 digits")
        return value


class RecoveryTokenInput(BaseModel):
    """A recovery token taken from an emailed link."""

    model_config = ConfigDict(frozen=True)

    token: str

    @field_validator("token")
    @classmethod
    def _well_formed(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("No token provided")
        if not RECOVERY_TOKEN_PATTERN.fullmatch(value):
            raise ValueError("Invalid token format")
        return value


def parse_input(model: type[M], **data: object) -> M:
    """Validate *data* through *model*.

    Raises:
        UserInputError: With field-level messages if validation fails.
    """
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        errors: dict[str, list[str]] = {}
        for error in exc.errors():
            loc = ".".join(str(p) for p in error.get("loc", ("__root__",)))
            msg = error.get("msg", "validation error")
            # Pydantic prefixes messages from ValueError with "Value error, "
            msg = msg.removeprefix("Value error, ")
            errors.setdefault(loc or "__root__", []).append(msg)
        raise UserInputError(errors) from exc


__all__: list[str] = [
    "RECOVERY_TOKEN_PATTERN",
    "VERIFICATION_CODE_PATTERN",
    "VerificationCodeInput",
    "RecoveryTokenInput",
    "parse_input",
]
