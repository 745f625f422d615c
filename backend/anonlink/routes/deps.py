"""FastAPI dependencies: components built by the lifespan, and the current owner."""
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from anonlink.errors import InvalidTokenError
from anonlink.services.file_lifecycle import FileLifecycleService
from anonlink.services.identity import IdentityProvider, Principal

bearer_scheme = HTTPBearer(auto_error=False)


def get_file_service(request: Request) -> FileLifecycleService:
    return request.app.state.files


def get_identity(request: Request) -> IdentityProvider:
    return request.app.state.identity


async def get_current_owner(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    identity: IdentityProvider = Depends(get_identity),
) -> Principal:
    """Resolve the bearer token to a principal, or fail with 401."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise InvalidTokenError("Authorization header required")
    return identity.verify(credentials.credentials)
