"""
Pydantic schemas for account-related request/response validation.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr, Field

from staybook.domain.enums import AccountStatus, Role


class UserCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=50)
    password: str = Field(..., min_length=8, max_length=72)


class AdminAccountCreate(UserCreate):
    role: Role = Role.HOST
    account_status: AccountStatus = AccountStatus.ACTIVE


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)
    current_password: Optional[str] = None
    new_password: Optional[str] = Field(None, min_length=8, max_length=72)


class AdminAccountUpdate(BaseModel):
    role: Optional[Role] = None
    account_status: Optional[AccountStatus] = None


class UserResponse(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: str
    phone: Optional[str]
    role: Role
    account_status: AccountStatus
    created_at: datetime

    model_config = {"from_attributes": True}


class AccountSummary(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: str

    model_config = {"from_attributes": True}


class UserEnvelope(BaseModel):
    message: str
    user: UserResponse


class UserListEnvelope(BaseModel):
    message: str
    total: int
    users: list[UserResponse]


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class LoginResponse(Token):
    message: str
    user: UserResponse
