"""
Self-service profile endpoints.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from staybook.api.deps import get_current_account
from staybook.db.session import get_db
from staybook.models.account import Account
from staybook.schemas.user import ProfileUpdate, UserEnvelope
from staybook.services.account_service import update_profile

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/me", response_model=UserEnvelope)
async def read_me(account: Account = Depends(get_current_account)):
    return UserEnvelope(message="Profile fetched successfully", user=account)


@router.patch("/me", response_model=UserEnvelope)
async def update_me(
    patch: ProfileUpdate,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    """Update names, phone, or password (requires the current password)."""
    account = await update_profile(db, account, patch)
    return UserEnvelope(message="Profile updated successfully", user=account)
