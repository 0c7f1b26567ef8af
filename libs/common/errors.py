"""Application error taxonomy shared by the control plane API.

Every controller failure is expressed as an ``AppError`` whose ``ErrorType``
fixes the HTTP status. ``msg`` is safe to return to API clients; ``log`` and
``internal_err`` are only ever written to the service log.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional


class ErrorType(str, Enum):
    """Error kinds and the HTTP status each maps to."""

    BINDING = "binding_error"
    VALIDATION = "validation_error"
    PARSING = "parsing_error"
    INVALID_VALUE = "invalid_value_error"
    UNAUTHORIZED = "unauthorized_error"
    FORBIDDEN = "forbidden_error"
    NOT_FOUND = "not_found_error"
    CONFLICT = "conflict_error"
    GENERIC = "generic_error"
    GATEWAY_TIMEOUT = "gateway_timeout_error"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]


_STATUS_CODES = {
    ErrorType.BINDING: 400,
    ErrorType.VALIDATION: 400,
    ErrorType.PARSING: 400,
    ErrorType.INVALID_VALUE: 400,
    ErrorType.UNAUTHORIZED: 401,
    ErrorType.FORBIDDEN: 403,
    ErrorType.NOT_FOUND: 404,
    ErrorType.CONFLICT: 409,
    ErrorType.GENERIC: 500,
    ErrorType.GATEWAY_TIMEOUT: 504,
}


@dataclass
class FieldValidationError:
    """A single offending request field."""

    field: str
    err_msg: str

    def to_dict(self) -> dict:
        return {"field": self.field, "msg": self.err_msg}


class AppError(Exception):
    """Base exception for control plane request failures."""

    def __init__(
        self,
        type: ErrorType,
        msg: str,
        log: Optional[str] = None,
        internal_err: Optional[BaseException] = None,
        fields: Optional[List[FieldValidationError]] = None,
    ):
        self.type = type
        self.msg = msg
        self.log = log or msg
        self.internal_err = internal_err
        self.fields = fields or []
        super().__init__(msg)

    @property
    def status_code(self) -> int:
        return self.type.status_code

    def with_prefix(self, prefix: str) -> "AppError":
        """Return a copy whose client message is prefixed with ``prefix``."""
        return AppError(
            self.type,
            f"{prefix}: {self.msg}",
            log=self.log,
            internal_err=self.internal_err,
            fields=self.fields,
        )

    def __repr__(self) -> str:
        return f"AppError(type={self.type.value!r}, msg={self.msg!r})"


def not_found(msg: str, log: Optional[str] = None) -> AppError:
    return AppError(ErrorType.NOT_FOUND, msg, log=log)


def validation_error(msg: str, field: str, field_msg: str) -> AppError:
    """Validation failure pinned to one request field."""
    return AppError(
        ErrorType.VALIDATION,
        msg,
        log=field_msg,
        fields=[FieldValidationError(field=field, err_msg=field_msg)],
    )
