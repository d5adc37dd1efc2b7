"""
CareAudit - Shared Schemas
"""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from careaudit.models.change_log import ActorType, ChangeAction


class ORMModel(BaseModel):
    """Base for response schemas read straight from model instances."""
    model_config = ConfigDict(from_attributes=True)


class TimestampedResponse(ORMModel):
    id: UUID
    created_at: datetime
    updated_at: datetime


class ChangeLogResponse(ORMModel):
    id: UUID
    actor_type: ActorType
    actor_id: Optional[UUID] = None
    actor_label: Optional[str] = None
    action: ChangeAction
    entity_type: str
    entity_id: UUID
    before_json: Optional[Dict[str, Any]] = None
    after_json: Optional[Dict[str, Any]] = None
    changes: Optional[Dict[str, Any]] = None
    created_at: datetime
