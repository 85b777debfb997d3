from fastapi import Depends, HTTPException, status
from starlette.requests import Request

from .helpers import decode_access_token, extract_bearer_token
from .service import AuthService, get_auth_service


def get_token_payload(request: Request) -> dict:
    """Claims set by AuthPermissionMiddleware, or decoded from the header."""
    payload = getattr(request.state, "user", None)
    if payload:
        return payload
    token = extract_bearer_token(request.headers.get("Authorization"))
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )
    payload = decode_access_token(token)
    request.state.user = payload
    return payload


async def get_current_user(
    payload: dict = Depends(get_token_payload),
    auth: AuthService = Depends(get_auth_service),
) -> dict:
    """Live user record; rejects revoked tokens and inactive users."""
    return await auth.get_current_user(payload)
