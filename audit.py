"""Audit sink: records what happened on a bridge without ever failing the caller."""
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger("audit")

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class LoggingAuditSink:
    def record(self, bridge_id: str, level: str, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        try:
            logger.log(
                _LEVELS.get(level.lower(), logging.INFO),
                "[bridge %s] %s",
                bridge_id,
                message,
                extra={"bridge_id": bridge_id, "audit": metadata or {}},
            )
        except Exception:
            # an audit record is never worth a failed request
            logger.debug("Dropped audit record for bridge %s", bridge_id, exc_info=True)
