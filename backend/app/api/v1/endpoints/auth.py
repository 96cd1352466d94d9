from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.core.config import settings
from app.core.database import get_db
from app.core.logging_config import logger
from app.core.rate_limiter import limiter
from app.core.security import verify_password, create_user_token
from app.models.user import User
from app.modules.auth.dependencies import get_current_user
from app.modules.stremio.client import StremioClient, get_stremio_client
from app.schemas.auth import (
    UserRegister,
    UserLogin,
    UserResponse,
    TokenResponse,
    StremioCredentials,
    StremioLinkResponse,
)
from app.services.account_service import account_service

router = APIRouter()


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.RATE_LIMIT_REGISTER)
async def register(
    request: Request,
    user_data: UserRegister,
    db: AsyncSession = Depends(get_db)
):
    """Register a new plain user account"""
    client_ip = request.client.host if request.client else "unknown"

    user = await account_service.register(db, user_data)

    logger.log_auth_event("register", True, username=user.username, client_ip=client_ip)
    return user


@router.post("/login", response_model=TokenResponse)
@limiter.limit(settings.RATE_LIMIT_LOGIN)
async def login(
    request: Request,
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db)
):
    """Login with username and password"""
    client_ip = request.client.host if request.client else "unknown"

    result = await db.execute(select(User).where(User.username == credentials.username))
    user = result.scalar_one_or_none()

    if not user or not verify_password(credentials.password, user.hashed_password):
        logger.log_auth_event(
            "login", False, username=credentials.username, reason="invalid_credentials", client_ip=client_ip
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials"
        )

    if not user.is_active:
        logger.log_auth_event("login", False, username=user.username, reason="inactive", client_ip=client_ip)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account is inactive"
        )

    if user.is_expired:
        logger.log_auth_event("login", False, username=user.username, reason="expired", client_ip=client_ip)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account has expired"
        )

    logger.log_auth_event("login", True, username=user.username, client_ip=client_ip)
    return TokenResponse(access_token=create_user_token(user), user=user)


@router.get("/profile", response_model=UserResponse)
async def get_profile(current_user: User = Depends(get_current_user)):
    """Get current user profile"""
    return current_user


@router.post("/sync-stremio", response_model=StremioLinkResponse)
async def sync_stremio(
    data: StremioCredentials,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    client: StremioClient = Depends(get_stremio_client)
):
    """Link the current account to an existing Stremio account"""
    session = await client.login(data.email, data.password)
    user = await account_service.link_remote_account(db, current_user, session)
    return StremioLinkResponse(message="Stremio account linked successfully", user=user)


@router.post("/register-stremio", response_model=StremioLinkResponse)
async def register_stremio(
    data: StremioCredentials,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    client: StremioClient = Depends(get_stremio_client)
):
    """Create a Stremio account and link it to the current account"""
    session = await client.register(data.email, data.password)
    user = await account_service.link_remote_account(db, current_user, session)
    return StremioLinkResponse(message="Stremio account created and linked", user=user)
