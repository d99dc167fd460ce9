from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response

from medrecords.api.deps import ContextDep, DbDep, get_session_token
from medrecords.core.config import settings
from medrecords.schemas.auth import AuthResponse, LoginRequest, MessageResponse, PublicUser, SignupRequest
from medrecords.services import auth_service

router = APIRouter()


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_lifetime_days * 24 * 60 * 60,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        path="/",
    )


def _clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.session_cookie_name,
        path="/",
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
    )


@router.post("/login", response_model=AuthResponse)
def login(payload: LoginRequest, request: Request, response: Response, db: DbDep):
    client_ip = request.client.host if request.client else "Unknown"
    user_agent = request.headers.get("user-agent", "")
    result = auth_service.login(db, payload.email, payload.password, client_ip, user_agent)
    _set_session_cookie(response, result.token)
    return AuthResponse(success=True, message="Login successful", user=result.user, session_token=result.token)


@router.post("/signup", response_model=AuthResponse)
def signup(payload: SignupRequest, db: DbDep):
    auth_service.signup(
        db,
        full_name=payload.full_name,
        email=payload.email,
        gender=payload.gender,
        phone_number=payload.phone_number,
        password=payload.password,
    )
    return AuthResponse(success=True, message="Registration successful")


@router.post("/logout", response_model=MessageResponse)
def logout(response: Response, db: DbDep, token: Annotated[str | None, Depends(get_session_token)]):
    if token:
        auth_service.logout(db, token)
    _clear_session_cookie(response)
    return MessageResponse(success=True, message="Logged out successfully")


@router.post("/logout-all", response_model=MessageResponse)
def logout_all(response: Response, db: DbDep, ctx: ContextDep):
    count = auth_service.logout_everywhere(db, ctx.user_id)
    _clear_session_cookie(response)
    return MessageResponse(success=True, message=f"Closed {count} session(s)")


@router.get("/me", response_model=PublicUser)
def me(ctx: ContextDep):
    return ctx.user
