"""
Shared route dependencies: the current principal, role guards, and the
external collaborators (image store, mailer, side-effect outbox).
"""

from functools import lru_cache

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from staybook.core.config import get_settings
from staybook.core.security import get_current_user_id
from staybook.db.session import get_db
from staybook.domain.enums import Role
from staybook.infrastructure import ImageStore, LogMailer, Mailer, S3ImageStore, SMTPMailer
from staybook.models.account import Account
from staybook.services.outbox import SideEffectOutbox


async def get_current_account(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Account:
    """Resolve the token's account. Only active accounts may act."""
    account = await db.get(Account, user_id)
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account not found",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not account.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Account is {account.account_status.replace('_', ' ')}",
        )
    structlog.contextvars.bind_contextvars(user_id=account.id, role=account.role)
    return account


def require_roles(*roles: Role):
    """Route guard: 403 unless the principal holds one of `roles`."""
    allowed = {role.value for role in roles}

    async def guard(account: Account = Depends(get_current_account)) -> Account:
        if account.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{account.role}' is not allowed to perform this action",
            )
        return account

    return guard


@lru_cache()
def get_image_store() -> ImageStore:
    return S3ImageStore(get_settings())


@lru_cache()
def get_mailer() -> Mailer:
    settings = get_settings()
    if settings.SMTP_HOST:
        return SMTPMailer(settings)
    return LogMailer()


def get_outbox(
    image_store: ImageStore = Depends(get_image_store),
    mailer: Mailer = Depends(get_mailer),
) -> SideEffectOutbox:
    return SideEffectOutbox(image_store=image_store, mailer=mailer)
