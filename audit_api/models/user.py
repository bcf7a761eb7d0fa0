from enum import Enum
from typing import FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """
    Caller roles supplied by the identity provider.
    ADMIN: sees and manages every location
    AUDITOR: counts stock at assigned locations
    CLIENT: reads reports for assigned locations
    """

    ADMIN = "admin"
    AUDITOR = "auditor"
    CLIENT = "client"


class Permission(str, Enum):
    VIEW_ALL_LOCATIONS = "view_all_locations"
    MANAGE_USERS = "manage_users"
    VIEW_REPORTS = "view_reports"
    CONDUCT_AUDITS = "conduct_audits"
    MANAGE_CATALOG = "manage_catalog"
    UPLOAD_CLOSING_STOCK = "upload_closing_stock"
    MANAGE_QUESTIONS = "manage_questions"


class UserContext(BaseModel):
    """
    Read-only view of the current caller, as handed over by the identity
    collaborator. assigned_locations holds location ids, not names.
    """

    user_id: Optional[str] = None
    role: Role
    assigned_locations: FrozenSet[str] = Field(default_factory=frozenset)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
