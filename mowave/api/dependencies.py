"""
FastAPI dependencies: service access and bearer-token authentication.
"""
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from mowave.core.container import Services
from mowave.core.exceptions import AuthenticationError, PermissionDeniedError
from mowave.database.models import Role, User

bearer_scheme = HTTPBearer(auto_error=False)


def get_services(request: Request) -> Services:
    return request.app.state.services


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    services: Services = Depends(get_services),
) -> User:
    """
    Resolve the bearer token to an active user.

    Raises:
        AuthenticationError: Missing, invalid or expired token
    """
    if credentials is None:
        raise AuthenticationError("Access token required")
    return services.users.decode_token(credentials.credentials)


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """
    Require the admin role.

    Raises:
        PermissionDeniedError: Authenticated user is not an admin
    """
    if user.role != Role.ADMIN:
        raise PermissionDeniedError("Admin access required")
    return user
