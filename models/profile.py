from datetime import datetime

from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base


class Profile(Base):
    """Role record for an authenticated user; accounts live in the auth service."""
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    role: Mapped[str] = mapped_column(String(20), default="customer")  # customer, admin
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
