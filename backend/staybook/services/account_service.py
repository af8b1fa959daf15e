"""
Account management: self-service profile edits and admin administration.
"""

from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from staybook.core.logging import get_logger
from staybook.core.security import hash_password, verify_password
from staybook.domain.enums import AccountStatus, Role
from staybook.models.account import Account
from staybook.models.listing import Listing
from staybook.schemas.user import AdminAccountCreate, AdminAccountUpdate, ProfileUpdate
from staybook.services.auth_service import ensure_email_free

logger = get_logger(__name__)


async def get_account(db: AsyncSession, account_id: int) -> Account:
    account = await db.get(Account, account_id)
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
    return account


async def update_profile(db: AsyncSession, account: Account, patch: ProfileUpdate) -> Account:
    changes = patch.model_dump(exclude_unset=True, exclude={"current_password", "new_password"})
    empty = [name for name, value in changes.items() if value is None and name != "phone"]
    if empty:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{empty[0]} cannot be empty",
        )

    if patch.new_password and not (
        patch.current_password and verify_password(patch.current_password, account.hashed_password)
    ):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect",
        )

    for name, value in changes.items():
        setattr(account, name, value)
    if patch.new_password:
        account.hashed_password = hash_password(patch.new_password)

    await db.commit()
    logger.info(
        "profile_updated",
        user_id=account.id,
        fields=sorted(changes),
        password_changed=bool(patch.new_password),
    )
    return account


async def create_account(db: AsyncSession, admin: Account, data: AdminAccountCreate) -> Account:
    await ensure_email_free(db, data.email)

    account = Account(
        first_name=data.first_name,
        last_name=data.last_name,
        email=data.email.lower(),
        phone=data.phone,
        hashed_password=hash_password(data.password),
        role=data.role.value,
        account_status=data.account_status.value,
    )
    db.add(account)
    await db.commit()

    logger.info("account_created", account_id=account.id, role=account.role, created_by=admin.id)
    return account


async def list_accounts(
    db: AsyncSession,
    role: Optional[Role] = None,
    account_status: Optional[AccountStatus] = None,
) -> tuple[list[Account], int]:
    query = select(Account)
    if role is not None:
        query = query.where(Account.role == role.value)
    if account_status is not None:
        query = query.where(Account.account_status == account_status.value)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(query.order_by(Account.created_at.desc(), Account.id.desc()))
    return list(result.scalars().all()), total


async def update_account(
    db: AsyncSession,
    admin: Account,
    account_id: int,
    patch: AdminAccountUpdate,
) -> Account:
    account = await get_account(db, account_id)
    if account.id == admin.id and (
        (patch.role is not None and patch.role != Role.ADMIN)
        or (patch.account_status is not None and patch.account_status != AccountStatus.ACTIVE)
    ):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Admins cannot demote or deactivate themselves",
        )

    if account.role == Role.HOST.value and patch.role is not None and patch.role != Role.HOST:
        owned = (
            await db.execute(select(func.count()).select_from(Listing).where(Listing.host_id == account.id))
        ).scalar_one()
        if owned:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Host still owns listings and cannot change role",
            )

    if patch.role is not None:
        account.role = patch.role.value
    if patch.account_status is not None:
        account.account_status = patch.account_status.value
    await db.commit()

    logger.info(
        "account_updated",
        account_id=account_id,
        role=account.role,
        status=account.account_status,
        updated_by=admin.id,
    )
    return account


async def delete_account(db: AsyncSession, admin: Account, account_id: int) -> Account:
    """Soft delete: the row stays so bookings keep their requester."""
    account = await get_account(db, account_id)
    if account.id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Admins cannot delete themselves",
        )

    account.account_status = AccountStatus.DELETED.value
    await db.commit()
    logger.info("account_deleted", account_id=account_id, deleted_by=admin.id)
    return account
