"""
Identity schemas shared by the session boundary and the sync layer.
"""

from pydantic import BaseModel
from enum import Enum

from reportcard.core.config import settings


class IdentityRole(str, Enum):
    TEACHER = "teacher"
    ADMIN = "admin"


class Identity(BaseModel):
    """Opaque identity plus the profile shown in the UI."""
    id: str
    name: str = "Teacher"
    username: str = ""
    email: str = ""
    role: IdentityRole = IdentityRole.TEACHER

    @property
    def is_guest(self) -> bool:
        return self.id == settings.GUEST_IDENTITY_ID


def guest_identity() -> Identity:
    return Identity(
        id=settings.GUEST_IDENTITY_ID,
        name="Guest Teacher",
        username="guest",
        email="guest@kinderreport.com",
        role=IdentityRole.TEACHER,
    )
