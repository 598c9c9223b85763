"""
Module: commission_kernel.models.user
Responsibility: Team members who can earn commissions (coaches, closers,
    setters, referrers).  This table is the user directory consumed by CSV
    coach resolution, adjustments and orphan matching.
Architecture position: Kernel > Models.  May import from db/ only.
"""

from __future__ import annotations

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from commission_kernel.db.base import TrackedBase


class TeamUser(TrackedBase):
    __tablename__ = "team_users"

    __table_args__ = (
        Index("ix_team_users_email", "email", unique=True),
        Index("ix_team_users_name", "name"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    job_title: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<TeamUser {self.email}>"
