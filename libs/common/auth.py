"""Access token authentication and role gating.

Central helpers for JWT issuance/verification and the role gates the
controllers hang on their routes.

Design
- ``AuthManager`` issues and verifies end-user access tokens
- ``UserContext`` is the typed identity handed to controllers
- ``require_roles`` builds a FastAPI dependency for one role gate
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Optional

import jwt
import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .errors import AppError, ErrorType

logger = structlog.get_logger("auth")

bearer_scheme = HTTPBearer(auto_error=False)


class Role(str, Enum):
    """Roles carried in the ``role`` claim."""

    USER = "user"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


ALLOW_ALL: FrozenSet[Role] = frozenset({Role.USER, Role.ADMIN, Role.SUPER_ADMIN})
ALLOW_ADMIN: FrozenSet[Role] = frozenset({Role.ADMIN, Role.SUPER_ADMIN})
ALLOW_SUPER_ADMIN: FrozenSet[Role] = frozenset({Role.SUPER_ADMIN})


@dataclass(frozen=True)
class UserContext:
    """Identity of the caller as established by the access token."""

    user_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role in ALLOW_ADMIN


class AuthManager:
    """Issues and validates end-user JWTs.

    Keep payloads minimal (subject and role) and avoid sensitive data.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        access_token_expire_minutes: int = 30
    ):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.access_token_expire_minutes = access_token_expire_minutes

    def create_access_token(
        self,
        user_id: str,
        role: Role,
        expires_delta: Optional[timedelta] = None
    ) -> str:
        """Create a JWT access token for ``user_id``."""
        expire = datetime.now(timezone.utc) + (
            expires_delta or timedelta(minutes=self.access_token_expire_minutes)
        )
        payload: Dict[str, Any] = {"sub": user_id, "role": role.value, "exp": expire}
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def verify_token(self, token: str) -> UserContext:
        """Verify a token and return the caller identity.

        Raises ``AppError`` (unauthorized) on invalid or expired tokens.
        """
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError as e:
            raise AppError(ErrorType.UNAUTHORIZED, "Token has expired", internal_err=e)
        except jwt.PyJWTError as e:
            raise AppError(ErrorType.UNAUTHORIZED, "Could not validate credentials", internal_err=e)

        user_id = payload.get("sub")
        try:
            role = Role(payload.get("role", Role.USER.value))
        except ValueError as e:
            raise AppError(ErrorType.UNAUTHORIZED, "Could not validate credentials", internal_err=e)
        if not user_id:
            raise AppError(ErrorType.UNAUTHORIZED, "Could not validate credentials", log="token without subject")
        return UserContext(user_id=user_id, role=role)


def require_roles(allowed: FrozenSet[Role]) -> Callable[..., UserContext]:
    """Create a dependency that admits callers holding one of ``allowed``."""

    def dependency(
        request: Request,
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    ) -> UserContext:
        if credentials is None:
            raise AppError(ErrorType.UNAUTHORIZED, "Missing access token")
        auth_manager: AuthManager = request.app.state.auth_manager
        user = auth_manager.verify_token(credentials.credentials)
        if user.role not in allowed:
            logger.warning("Access denied", user_id=user.user_id, role=user.role.value, path=request.url.path)
            raise AppError(ErrorType.FORBIDDEN, "Not allowed to perform this operation")
        return user

    return dependency


def create_auth_manager_from_config(config) -> AuthManager:
    """Create auth manager from config."""
    return AuthManager(
        secret_key=config.cp_jwt_secret_key,
        algorithm=config.cp_jwt_algorithm,
    )
