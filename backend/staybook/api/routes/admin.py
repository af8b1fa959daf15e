"""
Admin account management.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from staybook.api.deps import require_roles
from staybook.db.session import get_db
from staybook.domain.enums import AccountStatus, Role
from staybook.models.account import Account
from staybook.schemas.user import AdminAccountCreate, AdminAccountUpdate, UserEnvelope, UserListEnvelope
from staybook.services import account_service

router = APIRouter(prefix="/admin", tags=["Admin"])

admin_only = require_roles(Role.ADMIN)


@router.post("/accounts", response_model=UserEnvelope, status_code=status.HTTP_201_CREATED)
async def create_account(
    data: AdminAccountCreate,
    admin: Account = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    account = await account_service.create_account(db, admin, data)
    return UserEnvelope(message="Account created successfully", user=account)


@router.get("/accounts", response_model=UserListEnvelope)
async def list_accounts(
    role: Optional[Role] = None,
    account_status: Optional[AccountStatus] = None,
    admin: Account = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    accounts, total = await account_service.list_accounts(db, role, account_status)
    return UserListEnvelope(message="Accounts fetched successfully", total=total, users=accounts)


@router.patch("/accounts/{account_id}", response_model=UserEnvelope)
async def update_account(
    account_id: int,
    patch: AdminAccountUpdate,
    admin: Account = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    """Change an account's role or status (e.g. activate a pending host)."""
    account = await account_service.update_account(db, admin, account_id, patch)
    return UserEnvelope(message="Account updated successfully", user=account)


@router.delete("/accounts/{account_id}", response_model=UserEnvelope)
async def delete_account(
    account_id: int,
    admin: Account = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    account = await account_service.delete_account(db, admin, account_id)
    return UserEnvelope(message="Account deleted successfully", user=account)
