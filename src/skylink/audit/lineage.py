from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from skylink.db.repositories import AuditRepository


@dataclass
class AuditRecord:
    id: str
    timestamp: str
    action: str
    component: str
    order_number: str | None
    user_id: int | None
    from_status: str | None
    to_status: str | None
    output_reference: str | None
    detail: dict[str, Any]


class AuditStore:
    def __init__(self, repository: AuditRepository | None = None) -> None:
        self.repository = repository or AuditRepository()

    def reset(self) -> None:
        self.repository.reset()

    def log(
        self,
        action: str,
        component: str,
        order_number: str | None = None,
        user_id: int | None = None,
        from_status: str | None = None,
        to_status: str | None = None,
        output_reference: str | None = None,
        detail: dict[str, Any] | None = None,
    ) -> AuditRecord:
        row = {
            "id": str(uuid4()),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "action": action,
            "component": component,
            "order_number": order_number,
            "user_id": user_id,
            "from_status": from_status,
            "to_status": to_status,
            "output_reference": output_reference,
            "detail": detail or {},
        }
        stored = self.repository.insert(row)
        return AuditRecord(**stored)

    def get_lineage(self, output_reference: str) -> list[AuditRecord]:
        rows = self.repository.get_by_output_reference(output_reference)
        return [AuditRecord(**row) for row in rows]

    def get_history(self, order_number: str) -> list[AuditRecord]:
        rows = self.repository.get_by_order(order_number)
        return [AuditRecord(**row) for row in rows]
