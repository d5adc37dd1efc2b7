"""
CareAudit - Change Log Service

Append-only audit trail of workflow transitions. Entries are written in
the same transaction as the change they describe.
"""

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from careaudit.models.change_log import ChangeAction, ChangeLog
from careaudit.services.tenant import CallerContext, TenantSession


def to_json_safe(value: Any) -> Any:
    """Convert ids, enums, dates and decimals into JSON-serializable values."""
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {str(k): to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_json_safe(v) for v in value]
    return value


def snapshot(entity: Any, fields: Iterable[str]) -> Dict[str, Any]:
    """JSON-safe picture of selected attributes of an entity."""
    return {name: to_json_safe(getattr(entity, name)) for name in fields}


class ChangeLogService:
    """Service for writing and reading the workflow audit trail."""

    def __init__(self, tenant: TenantSession):
        self.tenant = tenant

    async def record(
        self,
        actor: CallerContext,
        action: ChangeAction,
        entity_type: str,
        entity_id: uuid.UUID,
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None,
    ) -> ChangeLog:
        """
        Append a change log entry.

        Args:
            actor: Who performed the change
            action: Workflow event
            entity_type: Type of entity (e.g., 'audit', 'finding')
            entity_id: ID of the affected entity
            before: State before the change
            after: State after the change

        Returns:
            Created ChangeLog record (flushed, not committed)
        """
        before = to_json_safe(before) if before is not None else None
        after = to_json_safe(after) if after is not None else None

        changes = None
        if before and after:
            changes = self._calculate_changes(before, after)

        entry = ChangeLog(
            actor_type=actor.actor_type,
            actor_id=actor.user_id,
            actor_label=actor.actor_label,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            before_json=before,
            after_json=after,
            changes=changes,
        )
        self.tenant.add(entry)
        await self.tenant.flush()
        return entry

    def _calculate_changes(
        self,
        old_values: Dict[str, Any],
        new_values: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Calculate what changed between old and new values."""
        changes = {}

        all_keys = set(old_values.keys()) | set(new_values.keys())

        for key in all_keys:
            old_val = old_values.get(key)
            new_val = new_values.get(key)

            if old_val != new_val:
                changes[key] = {
                    "old": old_val,
                    "new": new_val,
                }

        return changes

    async def history(
        self,
        entity_type: str,
        entity_id: uuid.UUID,
    ) -> List[ChangeLog]:
        """Every entry for one entity, oldest first."""
        stmt = (
            self.tenant.select(ChangeLog)
            .where(ChangeLog.entity_type == entity_type, ChangeLog.entity_id == entity_id)
            .order_by(ChangeLog.created_at.asc(), ChangeLog.id.asc())
        )
        return await self.tenant.all(stmt)
