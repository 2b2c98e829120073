"""
Core - Per-call service context and audit vocabulary.
"""

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from bizledger.domain.exceptions import ValidationError


class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ARCHIVE = "ARCHIVE"
    POST = "POST"
    VOID = "VOID"
    ADJUST = "ADJUST"
    TRANSITION = "TRANSITION"
    IMPORT = "IMPORT"
    RECALCULATE = "RECALCULATE"


@dataclass(frozen=True)
class ServiceContext:
    """
    Explicit organization scope and acting user, passed into every service.
    Services hold no other state between calls.
    """
    organization_id: UUID
    user_id: str

    def __post_init__(self) -> None:
        if self.organization_id is None:
            raise ValidationError("Organization ID is required")
        if not self.user_id:
            raise ValidationError("User ID is required")
