"""
Resellers API

Admins create resellers and top up their credits. A reseller can read its
own record, customers and statistics.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.core.exceptions import ForbiddenError
from app.models.user import User, UserRole
from app.modules.auth.dependencies import get_current_admin, get_current_manager
from app.schemas.auth import UserResponse
from app.schemas.reseller import (
    CreditsRequest,
    CreditsResponse,
    ResellerCreate,
    ResellerStats,
    ResellerUpdate,
)
from app.schemas.user import UserListResponse
from app.services.account_service import account_service

router = APIRouter()


async def _reseller_for(db: AsyncSession, reseller_id: str, current_user: User) -> User:
    """Admins reach any reseller, a reseller only itself"""
    if current_user.role != UserRole.ADMIN and current_user.id != reseller_id:
        raise ForbiddenError("Access denied")
    return await account_service.get_reseller(db, reseller_id)


@router.get("", response_model=UserListResponse)
async def list_resellers(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None),
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    return await account_service.list_accounts(
        db, admin, page=page, page_size=page_size, search=search, role=UserRole.RESELLER
    )


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_reseller(
    data: ResellerCreate,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    return await account_service.create_reseller(db, data)


@router.get("/stats/me", response_model=ResellerStats)
async def my_stats(
    current_user: User = Depends(get_current_manager),
    db: AsyncSession = Depends(get_db)
):
    """Statistics for the calling reseller"""
    if current_user.role != UserRole.RESELLER:
        raise ForbiddenError("Reseller access required")
    return await account_service.reseller_stats(db, current_user)


@router.get("/{reseller_id}", response_model=UserResponse)
async def get_reseller(
    reseller_id: str,
    current_user: User = Depends(get_current_manager),
    db: AsyncSession = Depends(get_db)
):
    return await _reseller_for(db, reseller_id, current_user)


@router.put("/{reseller_id}", response_model=UserResponse)
async def update_reseller(
    reseller_id: str,
    data: ResellerUpdate,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    reseller = await account_service.get_reseller(db, reseller_id)
    return await account_service.update_reseller(db, reseller, data)


@router.delete("/{reseller_id}")
async def delete_reseller(
    reseller_id: str,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Delete a reseller; its customers stay, without an owner"""
    reseller = await account_service.get_reseller(db, reseller_id)
    await account_service.delete_account(db, reseller)
    return {"success": True, "message": "Reseller deleted successfully"}


@router.post("/{reseller_id}/credits", response_model=CreditsResponse)
async def add_credits(
    reseller_id: str,
    data: CreditsRequest,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    reseller = await account_service.get_reseller(db, reseller_id)
    reseller = await account_service.add_credits(db, reseller, data.amount)
    return CreditsResponse(message=f"Added {data.amount} credits", credits=reseller.credits)


@router.get("/{reseller_id}/users", response_model=UserListResponse)
async def reseller_users(
    reseller_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None),
    current_user: User = Depends(get_current_manager),
    db: AsyncSession = Depends(get_db)
):
    reseller = await _reseller_for(db, reseller_id, current_user)
    return await account_service.list_accounts(
        db, current_user, page=page, page_size=page_size, search=search, reseller_id=reseller.id
    )


@router.get("/{reseller_id}/stats", response_model=ResellerStats)
async def reseller_stats(
    reseller_id: str,
    current_user: User = Depends(get_current_manager),
    db: AsyncSession = Depends(get_db)
):
    reseller = await _reseller_for(db, reseller_id, current_user)
    return await account_service.reseller_stats(db, reseller)
