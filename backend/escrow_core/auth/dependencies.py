"""
Authentication dependencies for FastAPI
"""

from typing import Optional
from fastapi import Depends, HTTPException, Header, Request, status
from sqlalchemy.orm import Session
import jwt as pyjwt

from escrow_core.auth.principal import Principal, get_or_create_user_from_principal
from escrow_core.core.security.models import Role
from escrow_core.core.users.models import User
from escrow_core.infrastructure.database import get_db
from escrow_core.infrastructure.logging_config import trace_id_context
from escrow_core.infrastructure.settings import get_settings


def _auth_error(status_code: int, code: str, message: str) -> HTTPException:
    headers = {"WWW-Authenticate": "Bearer"} if status_code == status.HTTP_401_UNAUTHORIZED else None
    return HTTPException(
        status_code=status_code,
        detail={
            "error": {
                "code": code,
                "message": message,
                "trace_id": trace_id_context.get(),
            }
        },
        headers=headers,
    )


def decode_token(token: str) -> Principal:
    """Verify an HS256 bearer token and build the Principal from its claims"""
    settings = get_settings()
    try:
        payload = pyjwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except pyjwt.ExpiredSignatureError:
        raise _auth_error(status.HTTP_401_UNAUTHORIZED, "TOKEN_EXPIRED", "Token expired")
    except pyjwt.InvalidTokenError as e:
        raise _auth_error(status.HTTP_401_UNAUTHORIZED, "INVALID_TOKEN", f"Invalid token: {str(e)}")

    subject = payload.get("sub")
    if not subject:
        raise _auth_error(status.HTTP_401_UNAUTHORIZED, "INVALID_TOKEN", "Invalid token: missing subject")

    roles = payload.get("roles")
    if roles is None:
        roles = [payload["role"]] if payload.get("role") else []
    elif isinstance(roles, str):
        roles = [roles]

    return Principal(
        subject=str(subject),
        email=payload.get("email"),
        name=payload.get("name"),
        roles=list(roles),
        raw_claims=payload,
    )


async def get_current_principal(
    authorization: Optional[str] = Header(None),
) -> Principal:
    """Extract Principal from the Bearer token in the Authorization header"""
    if not authorization:
        raise _auth_error(status.HTTP_401_UNAUTHORIZED, "AUTHORIZATION_MISSING", "Authorization header missing")

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise _auth_error(status.HTTP_401_UNAUTHORIZED, "INVALID_TOKEN", "Invalid authorization header format")
    if scheme.lower() != "bearer":
        raise _auth_error(status.HTTP_401_UNAUTHORIZED, "INVALID_TOKEN", "Invalid authentication scheme")

    return decode_token(token)


def get_current_user(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> User:
    """Resolve (provisioning on first use) the local user for the principal"""
    user = get_or_create_user_from_principal(db, principal)
    if user is None:
        raise _auth_error(status.HTTP_403_FORBIDDEN, "NOT_AUTHORIZED", "Token carries no platform role")
    if not user.is_active:
        raise _auth_error(status.HTTP_403_FORBIDDEN, "USER_SUSPENDED", "User account is suspended")

    # Picked up by RequestLoggingMiddleware
    request.state.actor_id = str(user.id)
    request.state.actor_role = user.role.value
    return user


def require_role(*roles: Role):
    """Require one of the given roles - returns dependency"""
    allowed = {role.value for role in roles}

    def _check_role(user: User = Depends(get_current_user)) -> User:
        if user.role.value not in allowed:
            raise _auth_error(
                status.HTTP_403_FORBIDDEN,
                "NOT_AUTHORIZED",
                f"Insufficient permissions - {' or '.join(sorted(allowed))} role required",
            )
        return user
    return _check_role
