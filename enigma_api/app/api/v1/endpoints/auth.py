"""
Authentication endpoints for API v1.

Registration and login return the envelope ``{success, message, data:
{token, user}}`` that clients persist.  These routes form the
identity-proving rate-limit tier, so they see a much smaller request
budget than the rest of the API.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from enigma_api.app.core.security import build_token_claims, create_access_token, get_current_user
from enigma_api.app.schemas.user import AuthData, AuthResponse, UserCreate, UserLogin, UserRead
from enigma_api.app.services.user_service import UserAlreadyExists, UserService

router = APIRouter()


def _issue(request: Request, user: UserRead, message: str) -> AuthResponse:
    claims = build_token_claims(UserService.to_claims_source(user))
    token = create_access_token(claims, config=request.app.state.settings)
    return AuthResponse(message=message, data=AuthData(token=token, user=user))


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(payload: UserCreate, request: Request):
    """Register a member account and sign it in.

    Self-registered accounts always receive the ``user`` role; the
    administrator is created by the seeder.
    """
    try:
        user = await UserService.create_user(request.app.state.db, payload)
    except UserAlreadyExists:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "success": False,
                "message": "Validation failed",
                "errors": [{"field": "email", "message": "Email is already registered"}],
            },
        )
    return _issue(request, user, "User registered successfully")


@router.post("/login", response_model=AuthResponse)
async def login(payload: UserLogin, request: Request) -> AuthResponse:
    """Authenticate with email and password and return a token."""
    user = await UserService.authenticate(request.app.state.db, payload.email, payload.password)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return _issue(request, user, "Login successful")


@router.get("/me", response_model=Dict[str, Any])
async def me(current_user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    """Return the user behind the bearer token, re-verified server side."""
    return {"success": True, "data": {"user": current_user}}
