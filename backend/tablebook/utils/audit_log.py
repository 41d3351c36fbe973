from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from .request_id import get_request_id

AuditAction = Literal[
    "reservation.created",
    "reservation.confirmed",
    "reservation.cancelled",
    "reservation.no_show",
    "reservation.tables_reassigned",
]

_audit_logger = logging.getLogger("audit")
_audit_logger.setLevel(logging.INFO)
if not _audit_logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    _audit_logger.addHandler(handler)
_audit_logger.propagate = False


def _enum_to_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(getattr(value, "value", value))


def emit_audit_log(
    *,
    action: AuditAction,
    reservation_id: int,
    customer_id: Optional[int] = None,
    party_size: Optional[int] = None,
    table_ids: Optional[list[int]] = None,
    status_from: Any = None,
    status_to: Any = None,
    changed: Optional[bool] = None,
    reason: Optional[str] = None,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """Emit one JSON line on the ``audit`` logger. Raises RuntimeError if logging fails."""
    payload: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": "info",
        "action": action,
        "request_id": get_request_id(),
        "reservation_id": reservation_id,
        "customer_id": customer_id,
        "party_size": party_size,
        "table_ids": table_ids,
        "status_from": _enum_to_str(status_from),
        "status_to": _enum_to_str(status_to),
        "changed": changed,
        "reason": reason,
    }
    if extra:
        payload.update(extra)

    compact_payload = {k: v for k, v in payload.items() if v is not None}
    try:
        _audit_logger.info(json.dumps(compact_payload, ensure_ascii=True))
    except Exception as exc:
        raise RuntimeError("failed to emit audit log") from exc
