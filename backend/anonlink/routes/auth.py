"""Auth API routes - register and login."""
from fastapi import APIRouter, Depends

from anonlink.routes.deps import get_identity
from anonlink.schemas.auth import AuthResponse, LoginRequest, RegisterRequest, UserResponse
from anonlink.services.identity import IdentityProvider

router = APIRouter(prefix="/api/v1", tags=["auth"])


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(
    body: RegisterRequest,
    identity: IdentityProvider = Depends(get_identity),
):
    principal = await identity.register(body.username, body.email, body.password)
    token = identity.issue_token(principal)
    return AuthResponse(user=UserResponse(id=principal.user_id, username=principal.username), token=token)


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    identity: IdentityProvider = Depends(get_identity),
):
    principal, token = await identity.authenticate(body.username, body.password)
    return AuthResponse(user=UserResponse(id=principal.user_id, username=principal.username), token=token)
