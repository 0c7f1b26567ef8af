"""Request body binding into pydantic models with envelope-shaped errors."""

import json
from typing import Type, TypeVar

from fastapi import Request
from pydantic import BaseModel, ValidationError

from libs.common.errors import AppError, ErrorType, FieldValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)

# pydantic error types that mean the body has the wrong shape, not a bad value
_SHAPE_ERROR_SUFFIXES = ("_type", "_parsing", "extra_forbidden")


def _field_path(loc) -> str:
    return ".".join(str(part) for part in loc) or "body"


def validation_failure(e: ValidationError, msg: str = "Invalid request body") -> AppError:
    """Translate a pydantic error into BINDING or VALIDATION."""
    errors = e.errors()
    fields = [FieldValidationError(field=_field_path(err["loc"]), err_msg=err["msg"]) for err in errors]
    if any(err["type"].endswith(_SHAPE_ERROR_SUFFIXES) for err in errors):
        return AppError(ErrorType.BINDING, msg, log=str(e), fields=fields)
    return AppError(ErrorType.VALIDATION, msg, log=str(e), fields=fields)


def parse_payload(raw: bytes, model_cls: Type[ModelT]) -> ModelT:
    if not raw:
        raise AppError(ErrorType.BINDING, "Request body is required")
    try:
        payload = json.loads(raw)
    except ValueError as e:
        raise AppError(ErrorType.BINDING, "Request body is not valid JSON", internal_err=e)
    if not isinstance(payload, dict):
        raise AppError(ErrorType.BINDING, "Request body must be a JSON object")
    try:
        return model_cls.model_validate(payload)
    except ValidationError as e:
        raise validation_failure(e)


async def bind_json(request: Request, model_cls: Type[ModelT]) -> ModelT:
    """Read the request body and bind it to ``model_cls``."""
    return parse_payload(await request.body(), model_cls)


def revalidate(model: ModelT) -> ModelT:
    """Validate ``model`` again, typically after defaults were filled in."""
    try:
        return type(model).model_validate(model.model_dump())
    except ValidationError as e:
        raise validation_failure(e)
