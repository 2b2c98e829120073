"""
Application services - shared plumbing for the use-case classes.
"""

from enum import Enum
from typing import Any
from uuid import UUID

from bizledger.core.config import Settings, get_settings
from bizledger.core.context import AuditAction, ServiceContext
from bizledger.infrastructure.database.repositories import AuditRepository
from bizledger.infrastructure.database.unit_of_work import UnitOfWork


class ApplicationService:
    """
    Base for services constructed per call with an explicit context.
    Every public mutating method runs inside ``self.uow.atomic()`` so a
    service called from another service joins the caller's transaction.
    """

    def __init__(self, uow: UnitOfWork, context: ServiceContext, settings: Settings | None = None):
        self.uow = uow
        self.session = uow.session
        self.context = context
        self.settings = settings or get_settings()
        self.audit = AuditRepository(self.session, context.organization_id, context.user_id)

    @property
    def organization_id(self) -> UUID:
        return self.context.organization_id

    @property
    def user_id(self) -> str:
        return self.context.user_id

    def record(self, action: AuditAction, entity_type: str, entity_id: UUID, new_value: Any = None) -> None:
        self.audit.record(action.value, entity_type, entity_id, new_value)


def enum_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value
