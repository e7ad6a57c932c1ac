"""
Service layer for Member operations.

Members are the directory the access gate authenticates against.  The
kernel reads it to check that a project's client exists and that an
assigned contractor is an active contractor.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select

from engagement_kernel.domain.dtos import MemberInfo
from engagement_kernel.domain.enums import Role
from engagement_kernel.exceptions import MemberNotFoundError, ValidationError
from engagement_kernel.logging_config import get_logger
from engagement_kernel.models.member import Member
from engagement_kernel.services.base import BaseService

logger = get_logger("services.member")


class MemberService(BaseService[Member]):
    """Registers and looks up members."""

    def _get_by_id(self, member_id: UUID) -> Member:
        member = self.session.get(Member, member_id)
        if member is None:
            raise MemberNotFoundError(str(member_id))
        return member

    def register(self, display_name: str, email: str, role: Role) -> MemberInfo:
        """
        Register a new member.

        Raises:
            ValidationError: Empty name, malformed or already registered email,
                or unknown role.
        """
        display_name = (display_name or "").strip()
        email = (email or "").strip().lower()
        if not display_name:
            raise ValidationError("display_name", "must not be empty")
        if "@" not in email:
            raise ValidationError("email", "must be an email address")
        try:
            role = Role(role)
        except ValueError as e:
            raise ValidationError("role", f"unknown role {role!r}") from e

        taken = self.session.execute(
            select(func.count()).select_from(Member).where(Member.email == email)
        ).scalar_one()
        if taken:
            raise ValidationError("email", "already registered")

        now = self.clock.now()
        member = Member(
            display_name=display_name,
            email=email,
            role=role,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        self.session.add(member)
        self.session.flush()

        logger.info(
            "member_registered",
            extra={"member_id": str(member.id), "role": role.value},
        )
        return MemberInfo.from_model(member)

    def get(self, member_id: UUID) -> MemberInfo:
        return MemberInfo.from_model(self._get_by_id(member_id))

    def require_active(self, member_id: UUID, role: Role) -> Member:
        """
        Return the member if it exists, is active and holds ``role``.

        Raises:
            MemberNotFoundError: Otherwise.  A member with the wrong role is
                reported as absent for that role.
        """
        member = self.session.get(Member, member_id)
        if member is None or not member.is_active or member.role != role:
            raise MemberNotFoundError(str(member_id))
        return member
