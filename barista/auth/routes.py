from fastapi import APIRouter, Depends

from barista.utils import success_response
from .dependencies import get_current_user, get_token_payload
from .schemas import LoginRequest
from .service import AuthService, get_auth_service

auth_router = APIRouter()


@auth_router.post("/login")
async def login(
    body: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """Authenticate user and return JWT + user data."""
    result = await auth.authenticate(
        identifier=body.login_identifier,
        password=body.password,
    )
    return success_response(data=result, message="Login successful")


@auth_router.get("/me")
async def me(user: dict = Depends(get_current_user)):
    """Return the live user record behind the bearer token."""
    return success_response(data={"user": user})


@auth_router.post("/logout")
async def logout(
    payload: dict = Depends(get_token_payload),
    auth: AuthService = Depends(get_auth_service),
):
    """Revoke the bearer token. Idempotent."""
    await auth.revoke_token(payload)
    return success_response(message="Logged out")
