"""Field validation for manager inputs.

Each entity exposes one check per operation with the contract::

    validators.<entity>.<op>(fields) -> Failure | None

``fields`` is the dict of values the caller supplied. Update operations only
pass the fields being changed, so their models make every field optional.
The checks are shape-only (types, lengths, formats); ids, permissions and
cross-entity rules are the managers' job. Numbers and flags are strict:
managers store the caller's values as given, so ``"2"`` must not pass as a
capacity.
"""

from __future__ import annotations

import re
from typing import Annotated, Any, Mapping, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    ValidationError,
    field_validator,
    model_validator,
)

from .exceptions import ErrorKind, Failure

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


def _check_email(value: str) -> str:
    if not _EMAIL_RE.match(value):
        raise ValueError("invalid email address")
    return value


def _check_optional_email(value: str) -> str:
    if value:
        _check_email(value)
    return value


Email = Annotated[str, AfterValidator(_check_email)]
# students may have no email; an empty string is exempt from the format check
StudentEmail = Annotated[str, AfterValidator(_check_optional_email)]


class _Fields(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class _UpdateFields(_Fields):
    """Partial update: absent fields stay unchanged, explicit nulls are rejected."""

    @model_validator(mode="before")
    @classmethod
    def _reject_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            for name, value in data.items():
                if value is None and name in cls.model_fields:
                    raise ValueError(f"{name} may not be null")
        return data


# ---- auth --------------------------------------------------------------------


class LoginFields(_Fields):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class RegisterFields(_Fields):
    email: Email
    password: str = Field(min_length=8)
    display_name: str = Field(min_length=1, max_length=100)

    @field_validator("password")
    @classmethod
    def _password_fits_hash(cls, value: str) -> str:
        if len(value.encode()) > MAX_PASSWORD_BYTES:
            raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
        return value


# ---- school ------------------------------------------------------------------


class CreateSchoolFields(_Fields):
    name: str = Field(min_length=1, max_length=200)
    address: str = Field(default="", max_length=500)
    phone: str = Field(default="", max_length=50)


class UpdateSchoolFields(_UpdateFields):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    address: Optional[str] = Field(default=None, max_length=500)
    phone: Optional[str] = Field(default=None, max_length=50)


# ---- classroom ---------------------------------------------------------------


class CreateClassroomFields(_Fields):
    name: str = Field(min_length=1, max_length=100)
    capacity: Optional[StrictInt] = Field(default=None, ge=1)


class UpdateClassroomFields(_UpdateFields):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    capacity: Optional[StrictInt] = Field(default=None, ge=1)


# ---- student -----------------------------------------------------------------


class CreateStudentFields(_Fields):
    name: str = Field(min_length=1, max_length=200)
    email: StudentEmail = ""


class UpdateStudentFields(_UpdateFields):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    email: Optional[StudentEmail] = None


# ---- resource ----------------------------------------------------------------


class CreateResourceFields(_Fields):
    name: str = Field(min_length=1, max_length=200)
    is_active: StrictBool = True
    quantity: StrictInt = Field(default=1, ge=0)
    description: str = Field(default="", max_length=1000)
    extra_data: dict[str, Any] = Field(default_factory=dict)


class UpdateResourceFields(_UpdateFields):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    is_active: Optional[StrictBool] = None
    quantity: Optional[StrictInt] = Field(default=None, ge=0)
    description: Optional[str] = Field(default=None, max_length=1000)
    extra_data: Optional[dict[str, Any]] = None


# ---- role --------------------------------------------------------------------


class CreateRoleFields(_Fields):
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    permissions: list[str]


class UpdateRoleFields(_UpdateFields):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    permissions: Optional[list[str]] = None


def validate_fields(model: type[BaseModel], fields: Mapping[str, Any]) -> Optional[Failure]:
    """Validate ``fields`` against ``model``; first error as a VALIDATION failure."""
    try:
        model.model_validate(dict(fields))
    except ValidationError as e:
        error = e.errors()[0]
        location = ".".join(str(part) for part in error["loc"])
        message = error["msg"].removeprefix("Value error, ")
        return Failure(ErrorKind.VALIDATION, f"{location}: {message}" if location else message)
    return None


class EntityValidator:
    """Operation checks of one entity, looked up by operation name."""

    def __init__(self, entity: str, models: Mapping[str, type[BaseModel]]) -> None:
        self.entity = entity
        self._models = dict(models)

    def __getattr__(self, op: str):
        models = self.__dict__.get("_models", {})
        if op not in models:
            raise AttributeError(f"no validator for {self.__dict__.get('entity')}.{op}")
        model = models[op]

        def check(fields: Mapping[str, Any]) -> Optional[Failure]:
            return validate_fields(model, fields)

        return check


class Validators:
    """All entity validators, as injected into the managers."""

    def __init__(self) -> None:
        self.auth = EntityValidator("auth", {"login": LoginFields, "register": RegisterFields})
        self.school = EntityValidator(
            "school",
            {"create_school": CreateSchoolFields, "update_school": UpdateSchoolFields},
        )
        self.classroom = EntityValidator(
            "classroom",
            {"create_classroom": CreateClassroomFields, "update_classroom": UpdateClassroomFields},
        )
        self.student = EntityValidator(
            "student",
            {"create_student": CreateStudentFields, "update_student": UpdateStudentFields},
        )
        self.resource = EntityValidator(
            "resource",
            {"create_resource": CreateResourceFields, "update_resource": UpdateResourceFields},
        )
        self.role = EntityValidator("role", {"create_role": CreateRoleFields, "update_role": UpdateRoleFields})


__all__ = ["EntityValidator", "MAX_PASSWORD_BYTES", "Validators", "validate_fields"]
