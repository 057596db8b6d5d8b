"""
Principal management and user provisioning
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from escrow_core.core.security.models import Role
from escrow_core.core.users.models import User, UserStatus

logger = logging.getLogger(__name__)


@dataclass
class Principal:
    """Authenticated user principal (supplied by the identity service)"""
    subject: str  # JWT 'sub' claim
    email: Optional[str] = None
    name: Optional[str] = None
    roles: List[str] = None
    raw_claims: Dict[str, Any] = None

    def __post_init__(self):
        if self.roles is None:
            self.roles = []
        if self.raw_claims is None:
            self.raw_claims = {}

    @property
    def role(self) -> Optional[Role]:
        """First recognised platform role"""
        for value in self.roles:
            try:
                return Role(str(value).upper())
            except ValueError:
                continue
        return None


def _subject_as_uuid(subject: str) -> Optional[UUID]:
    try:
        return UUID(subject)
    except (ValueError, TypeError):
        return None


def get_or_create_user_from_principal(
    db: Session,
    principal: Principal,
) -> Optional[User]:
    """
    Get or create User record from the authenticated Principal.

    Lookup order: external_subject, then id (when sub is a UUID), then email.
    On first authentication the user is created ACTIVE with the principal's role
    (and with id = sub when sub is a UUID); None if the principal carries no
    platform role. The identity service owns roles, so a
    changed role claim is written through.
    """
    role = principal.role
    subject_uuid = _subject_as_uuid(principal.subject)

    user: Optional[User] = db.execute(
        select(User).where(User.external_subject == principal.subject)
    ).scalar_one_or_none()

    if user is None and subject_uuid is not None:
        user = db.execute(select(User).where(User.id == subject_uuid)).scalar_one_or_none()

    if user is None and principal.email:
        user = db.execute(select(User).where(User.email == principal.email)).scalar_one_or_none()

    if user is None:
        if role is None:
            return None
        user = User(
            email=principal.email or f"{principal.subject}@identity.local",
            name=principal.name,
            role=role,
            status=UserStatus.ACTIVE,
            external_subject=principal.subject,
        )
        if subject_uuid is not None:
            user.id = subject_uuid
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info(
            "Created user from principal",
            extra={"user_id": str(user.id), "role": role.value, "subject": principal.subject},
        )
        return user

    changed = False
    if not user.external_subject:
        user.external_subject = principal.subject
        changed = True
    if role is not None and user.role != role:
        user.role = role
        changed = True
    if changed:
        db.commit()
        db.refresh(user)

    return user
