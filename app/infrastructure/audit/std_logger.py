import json
import logging
from typing import Optional, Dict, Any

from ...core.timeutils import utcnow
from ...application.identifiers import hash_identifier
from ...application.ports.audit_logger import AuditLogger


class StdAuditLogger(AuditLogger):
    def __init__(self) -> None:
        self._logger = logging.getLogger(__name__)

    def log(self, action: str, identifier: str, identity_id: Optional[str] = None, success: bool = True, details: Optional[Dict[str, Any]] = None) -> None:
        entry = {
            "timestamp": utcnow().isoformat(),
            "action": action,
            "identifier_hash": hash_identifier(identifier),
            "identity_id": identity_id,
            "success": success,
            "details": details or {},
        }
        if success:
            self._logger.info(f"AUDIT: {json.dumps(entry)}")
        else:
            self._logger.warning(f"AUDIT: {json.dumps(entry)}")
