"""Authentication routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.api.deps import get_current_user
from switchboard.core.auth import create_access_token
from switchboard.core.password import verify_password
from switchboard.domain.models.events import CamelModel
from switchboard.persistence.database import get_db
from switchboard.persistence.models.organization import User
from switchboard.persistence.repositories.organization_repository import UserRepository
from switchboard.settings import settings

router = APIRouter()


class LoginRequest(CamelModel):
    """Login request."""

    email: str
    password: str


class LoginResponse(CamelModel):
    """Login response."""

    access_token: str
    token_type: str = "bearer"
    user_id: str
    email: str


class UserInfoResponse(CamelModel):
    """Current user info response."""

    id: str
    email: str
    name: str | None = None


@router.post("/login", response_model=LoginResponse)
async def login(
    login_data: LoginRequest,
    response: Response,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> LoginResponse:
    """Login endpoint for the agent dashboard.

    The token is returned in the body and also set as an HttpOnly cookie so
    the agent event stream can authenticate.

    Args:
        login_data: Login credentials
        response: Outgoing response (cookie target)
        db: Database session

    Returns:
        JWT access token
    """
    user = await UserRepository(db).get_by_email(login_data.email.strip().lower())
    if not user or not verify_password(login_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )

    access_token = create_access_token(data={"sub": str(user.id)})
    response.set_cookie(
        key=settings.session_cookie_name,
        value=access_token,
        httponly=True,
        samesite="lax",
        secure=settings.environment == "production",
        max_age=settings.jwt_access_token_expire_minutes * 60,
    )
    return LoginResponse(access_token=access_token, user_id=user.id, email=user.email)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(response: Response) -> Response:
    """Clear the session cookie."""
    response.delete_cookie(settings.session_cookie_name)
    response.status_code = status.HTTP_204_NO_CONTENT
    return response


@router.get("/me", response_model=UserInfoResponse)
async def get_current_user_info(
    current_user: Annotated[User, Depends(get_current_user)],
) -> UserInfoResponse:
    """Get current authenticated user information."""
    return UserInfoResponse(id=current_user.id, email=current_user.email, name=current_user.name)
