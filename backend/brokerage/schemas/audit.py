"""Change log response schemas."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from brokerage.core.actor import AccessLevel
from brokerage.schemas.common import CamelModel
from brokerage.services.audit.enums import ChangeType, EntityType


class ChangeLogResponse(CamelModel):
    id: UUID
    entity_type: EntityType
    entity_id: UUID
    changed_by: UUID
    changed_by_name: str
    changed_by_email: str
    changed_by_access_level: AccessLevel
    change_type: ChangeType
    old_data: Optional[dict[str, Any]] = None
    new_data: Optional[dict[str, Any]] = None
    reason: Optional[str] = None
    changed_at: Optional[datetime] = None
