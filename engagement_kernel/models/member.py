"""
Module: engagement_kernel.models.member
Responsibility: ORM persistence for the people taking part in engagements:
    clients, contractors and admins.  The access gate authenticates against
    this directory; the kernel reads it to validate contractor assignment.
Architecture position: Kernel > Models.  May import from db/, domain/enums.py
    and exceptions.py only.

Invariants enforced:
    - email is unique (uq_member_email).
    - role is fixed at registration.

Failure modes:
    - IntegrityError on duplicate email.
"""

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from engagement_kernel.db.base import TrackedBase
from engagement_kernel.db.types import enum_column
from engagement_kernel.domain.enums import Role


class Member(TrackedBase):
    """
    A registered participant.

    Non-goals:
        - Credentials and sessions live in the access gate, not here.
    """

    __tablename__ = "members"

    __table_args__ = (
        UniqueConstraint("email", name="uq_member_email"),
        Index("idx_member_role", "role"),
    )

    display_name: Mapped[str] = mapped_column(String(255), nullable=False)

    email: Mapped[str] = mapped_column(String(320), nullable=False)

    role: Mapped[Role] = mapped_column(enum_column(Role), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Member {self.role.value}:{self.email}>"
