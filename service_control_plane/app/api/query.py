"""Query string parsing shared by the list endpoints."""

from typing import Dict, List, Optional

from fastapi import Request

from libs.common.auth import UserContext
from libs.common.errors import AppError, ErrorType
from ..models import ListOptions

OWNER_ID = "owner_id"


def _parse_int(name: str, raw: Optional[str], default: int) -> int:
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise AppError(ErrorType.PARSING, f"Invalid value for {name}", log=f"{name}={raw!r}", internal_err=e)


def parse_bool(name: str, raw: Optional[str], default: bool = False) -> bool:
    if raw is None or raw == "":
        return default
    value = raw.strip().lower()
    if value in ("1", "t", "true", "yes"):
        return True
    if value in ("0", "f", "false", "no"):
        return False
    raise AppError(ErrorType.PARSING, f"Invalid value for {name}", log=f"{name}={raw!r}")


def get_query_options(
    request: Request,
    supported_filters: List[str],
    default_limit: int = 20,
    max_limit: int = 1000,
) -> ListOptions:
    """Parse ``limit``, ``offset`` and the equality filters of ``supported_filters``."""
    params = request.query_params
    limit = _parse_int("limit", params.get("limit"), default_limit)
    offset = _parse_int("offset", params.get("offset"), 0)
    if limit < 1 or limit > max_limit:
        raise AppError(ErrorType.INVALID_VALUE, f"limit must be between 1 and {max_limit}")
    if offset < 0:
        raise AppError(ErrorType.INVALID_VALUE, "offset must not be negative")

    options = ListOptions(limit=limit, offset=offset)
    values = {name: params.getlist(name) for name in params.keys()}
    options.add_equal_to_filters_from_map(values, supported_filters)
    return options


def get_expand(request: Request) -> Dict[str, bool]:
    """``expand`` may repeat or hold a comma-separated list."""
    expand: Dict[str, bool] = {}
    for raw in request.query_params.getlist("expand"):
        for item in raw.split(","):
            item = item.strip()
            if item:
                expand[item] = True
    return expand


def validate_owner(user: UserContext, options: ListOptions) -> None:
    """Non-admins may only filter on their own ``owner_id``."""
    owners = options.get_filter(OWNER_ID)
    if user.is_admin or not owners:
        return
    if any(owner != user.user_id for owner in owners):
        raise AppError(
            ErrorType.FORBIDDEN,
            "Not allowed to list resources of other users",
            log=f"user {user.user_id} requested owners {owners}",
        )
