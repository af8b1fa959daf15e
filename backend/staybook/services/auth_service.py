"""
Authentication service handling account registration and login.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from staybook.models.account import Account
from staybook.schemas.user import UserCreate, UserLogin
from staybook.core.config import get_settings
from staybook.core.security import hash_password, verify_password, create_access_token
from staybook.core.logging import get_logger
from staybook.domain.enums import AccountStatus, Role

logger = get_logger(__name__)
settings = get_settings()


async def ensure_email_free(db: AsyncSession, email: str) -> None:
    """Raises 409 if the email is already registered."""
    result = await db.execute(select(Account).where(Account.email == email.lower()))
    if result.scalar_one_or_none():
        logger.warning("registration_failed", reason="email_exists", email=email)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )


async def register_user(db: AsyncSession, user_data: UserCreate) -> Account:
    """
    Register a new guest account with hashed password.
    New accounts wait for verification unless REQUIRE_ACCOUNT_VERIFICATION is off.
    """
    await ensure_email_free(db, user_data.email)

    account_status = (
        AccountStatus.PENDING_VERIFICATION
        if settings.REQUIRE_ACCOUNT_VERIFICATION
        else AccountStatus.ACTIVE
    )
    user = Account(
        first_name=user_data.first_name,
        last_name=user_data.last_name,
        email=user_data.email.lower(),
        phone=user_data.phone,
        hashed_password=hash_password(user_data.password),
        role=Role.USER.value,
        account_status=account_status.value,
    )
    db.add(user)
    await db.commit()

    logger.info("user_registered", user_id=user.id, email=user.email, status=user.account_status)
    return user


async def authenticate_user(db: AsyncSession, login_data: UserLogin) -> tuple[Account, str]:
    """
    Authenticate and return (account, JWT access token).
    Raises 401 if credentials are invalid, 403 if the account is not active.
    """
    result = await db.execute(select(Account).where(Account.email == login_data.email.lower()))
    user = result.scalar_one_or_none()

    if not user or not verify_password(login_data.password, user.hashed_password):
        logger.warning("login_failed", email=login_data.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        logger.warning("login_rejected", user_id=user.id, status=user.account_status)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Account is {user.account_status.replace('_', ' ')}",
        )

    token = create_access_token(data={"sub": str(user.id), "role": user.role})
    logger.info("user_logged_in", user_id=user.id, role=user.role)
    return user, token
