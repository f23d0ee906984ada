from __future__ import annotations

import json
from typing import Any

from sqlalchemy.orm import Session

from custodia.app.db.models.models_v1 import AuditLog


def record_audit(
    db: Session,
    *,
    action: str,
    entity_type: str,
    entity_id,
    actor_id: int | None = None,
    meta: dict[str, Any] | None = None,
) -> AuditLog:
    row = AuditLog(
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        meta=json.dumps(meta, ensure_ascii=False, default=str) if meta else None,
    )
    db.add(row)
    return row
