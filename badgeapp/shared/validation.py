from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping, Union

from ..config import SubjectRange
from .catalog import Catalog


MISSING_FIELD = "missing-field"
INVALID_EMAIL_FORMAT = "invalid-email-format"
INVALID_KEY_CODE = "invalid-key-code"
SUBJECT_ID_OUT_OF_RANGE = "subject-id-out-of-range"

REJECTION_MESSAGES = {
    MISSING_FIELD: "All fields are required.",
    INVALID_EMAIL_FORMAT: "Please enter a valid email address.",
    INVALID_KEY_CODE: "The key code entered is not recognised.",
    SUBJECT_ID_OUT_OF_RANGE: "The student id is outside the accepted range.",
}

EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")

# canonical field -> accepted payload names, first match wins
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "first_name": ("first_name", "firstName"),
    "last_name": ("last_name", "lastName"),
    "email": ("email",),
    "subject_id": ("subject_id", "subjectId", "studentId", "student_id"),
    "key_code": ("key_code", "keyCode"),
    "issuer": ("issuer",),
    "correlation_token": (
        "correlation_token",
        "correlationToken",
        "hiddenField",
        "hidden_field",
    ),
}


@dataclass(frozen=True)
class BadgeRequest:
    first_name: str
    last_name: str
    email: str
    subject_id: Union[int, str]
    key_code: str
    issuer: str
    correlation_token: str

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


def _pick(payload: Mapping[str, Any], names: tuple[str, ...]) -> str:
    for name in names:
        value = payload.get(name)
        if value is not None:
            return str(value).strip()
    return ""


def _coerce_subject_id(raw: str) -> Union[int, str]:
    if re.fullmatch(r"[+-]?\d+", raw):
        return int(raw)
    return raw


def parse_request(payload: Mapping[str, Any]) -> BadgeRequest:
    values = {field: _pick(payload, names) for field, names in FIELD_ALIASES.items()}
    values["subject_id"] = _coerce_subject_id(values["subject_id"])
    return BadgeRequest(**values)


def is_valid_email(value: str) -> bool:
    return bool(value) and value.count("@") == 1 and bool(EMAIL_RE.fullmatch(value))


def validate_request(
    request: BadgeRequest, catalog: Catalog, subject_range: SubjectRange
) -> str | None:
    """Return the first rejection reason for ``request`` or None when valid.

    Checks run in a fixed order: required fields, key code, email, subject id.
    Only the first failure is reported.
    """
    for field in FIELD_ALIASES:
        if getattr(request, field) in ("", None):
            return MISSING_FIELD
    if request.key_code not in catalog:
        return INVALID_KEY_CODE
    if not is_valid_email(request.email):
        return INVALID_EMAIL_FORMAT
    if request.subject_id not in subject_range:
        return SUBJECT_ID_OUT_OF_RANGE
    return None
