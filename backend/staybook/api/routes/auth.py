"""
Authentication endpoints: register and login.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from staybook.db.session import get_db
from staybook.schemas.user import UserCreate, UserEnvelope, UserLogin, LoginResponse
from staybook.services.auth_service import register_user, authenticate_user

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=UserEnvelope, status_code=status.HTTP_201_CREATED)
async def register(user_data: UserCreate, db: AsyncSession = Depends(get_db)):
    """Register a new guest account."""
    user = await register_user(db, user_data)
    return UserEnvelope(message="User registered successfully", user=user)


@router.post("/login", response_model=LoginResponse)
async def login(login_data: UserLogin, db: AsyncSession = Depends(get_db)):
    """Authenticate and receive a JWT access token."""
    user, token = await authenticate_user(db, login_data)
    return LoginResponse(message="Login successful", access_token=token, user=user)
