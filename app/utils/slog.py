# =============================================
# File: app/utils/slog.py
# Purpose: Structured JSON request/assignment events on the "recomengine" logger (caplog friendly)
# =============================================
from __future__ import annotations
import json
import logging
import os
import uuid
import hashlib
from typing import Any, Dict

_LOGGER_NAME = "recomengine"
_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

_logger = logging.getLogger(_LOGGER_NAME)
if not _logger.handlers:
    _logger.setLevel(getattr(logging, _LEVEL, logging.INFO))
    _handler = logging.StreamHandler()
    # Emit the message as-is; we pre-format JSON strings ourselves
    _handler.setFormatter(logging.Formatter("%(message)s"))
    _logger.addHandler(_handler)
    _logger.propagate = True  # allow pytest caplog to capture

def uhash(user_id: str) -> str:
    """Short hash of a shopper id (for privacy)."""
    return hashlib.sha256((user_id or "").encode("utf-8")).hexdigest()[:10]

def recommendation_context(tenant_id: str, user_id: str, meta: Any, n_items: int) -> Dict[str, Any]:
    """Fields the recommendations router attaches to `request.completed`. No raw shopper id."""
    return {
        "tenant_id": tenant_id,
        "uhash": uhash(user_id),
        "strategy": getattr(meta.strategy, "value", meta.strategy),
        "is_fallback": meta.is_fallback,
        "cached": meta.cached,
        "experiment_id": meta.experiment_id,
        "variant": getattr(meta.variant, "value", meta.variant),
        "items": n_items,
    }

def new_request_id() -> str:
    return uuid.uuid4().hex

def log_event(event: str, **fields: Any) -> None:
    rec = {"event": event}
    rec.update(fields)
    _logger.info(json.dumps(rec, ensure_ascii=False, default=str))

def finalize_request_log(
    request_id: str,
    method: str,
    path: str,
    status: int,
    latency_ms: int,
    client_ip: str | None,
    ctx: Dict[str, Any] | None = None,
) -> None:
    payload: Dict[str, Any] = {
        "event": "request.completed",
        "request_id": request_id,
        "method": method,
        "path": path,
        "status": status,
        "latency_ms": latency_ms,
        "client_ip": client_ip or "",
    }
    if ctx:
        payload.update(ctx)
    _logger.info(json.dumps(payload, ensure_ascii=False, default=str))
