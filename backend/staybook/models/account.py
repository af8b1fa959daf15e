"""
Account model: one row per person, whatever their role.
"""

from sqlalchemy import Column, Integer, String, CheckConstraint

from staybook.db.base import Base, TimestampMixin
from staybook.domain.enums import AccountStatus, Role


class Account(Base, TimestampMixin):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    phone = Column(String(50), nullable=True)
    hashed_password = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=Role.USER.value)
    account_status = Column(
        String(30), nullable=False, default=AccountStatus.PENDING_VERIFICATION.value
    )

    __table_args__ = (
        CheckConstraint("role IN ('admin', 'host', 'user')", name="check_account_role"),
        CheckConstraint(
            "account_status IN ('active', 'suspended', 'deleted', 'pending_verification')",
            name="check_account_status",
        ),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_active(self) -> bool:
        return self.account_status == AccountStatus.ACTIVE.value

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, email={self.email}, role={self.role})>"
