"""
Logging configuration for voucherauth.

Every record is one JSON object per line. Audit records carry their fields
in `extra_fields`, which the formatter merges into the top level so a log
pipeline can index on digest, failure_code or signer directly.
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

# Request ID of the HTTP request being served, '' outside requests
request_id_var: ContextVar[str] = ContextVar('request_id', default='')

SEVERITY_LEVELS = {
    "low": logging.INFO,
    "medium": logging.WARNING,
    "high": logging.ERROR,
    "critical": logging.CRITICAL,
}


class StructuredFormatter(logging.Formatter):
    """JSON line formatter for ingestion by ELK, Splunk or CloudWatch."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: Dict[str, Any] = {
            "timestamp": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_var.get()
        if request_id:
            entry["request_id"] = request_id

        entry.update(getattr(record, "extra_fields", {}))

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class AuditLogger:
    """
    Audit trail for the voucher pipeline.

    One record per submitted voucher, one per outcome, plus role changes and
    security events (bad signatures, unauthorized signers, rate limiting).
    """

    def __init__(self, name: str = "voucherauth.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, message: str, **fields) -> None:
        fields["event_type"] = event_type
        fields["request_id"] = request_id_var.get()
        self._logger.log(level, message, extra={"extra_fields": fields})

    def voucher_submitted(self, kind: str, digest: str, **fields) -> None:
        self._log(
            logging.INFO, "VOUCHER_SUBMITTED", f"{kind} voucher submitted",
            kind=kind, digest=digest, **fields
        )

    def voucher_applied(self, kind: str, digest: str, signer: str, event: Dict[str, Any]) -> None:
        self._log(
            logging.INFO, "VOUCHER_APPLIED", f"{kind} voucher applied",
            kind=kind, digest=digest, signer=signer, transition=event
        )

    def voucher_rejected(self, kind: str, digest: str, code: str, reason: str) -> None:
        self._log(
            logging.WARNING, "VOUCHER_REJECTED", f"{kind} voucher rejected: {code}",
            kind=kind, digest=digest, failure_code=code, reason=reason
        )

    def role_changed(self, role: str, account: str, granted: bool) -> None:
        """Log a grant or revoke of a role."""
        if granted:
            event_type, verb = "ROLE_GRANTED", "granted to"
        else:
            event_type, verb = "ROLE_REVOKED", "revoked from"
        self._log(
            logging.INFO, event_type, f"{role} {verb} {account}",
            role=role, account=account
        )

    def security_event(self, event: str, severity: str = "medium", **details) -> None:
        """Log a security-relevant event; severity selects the level."""
        self._log(
            SEVERITY_LEVELS.get(severity, logging.WARNING), "SECURITY_EVENT",
            f"Security event: {event}",
            security_event=event, severity=severity, **details
        )

    def rate_limit_exceeded(self, client_id: str, endpoint: str) -> None:
        self._log(
            logging.WARNING, "RATE_LIMIT_EXCEEDED",
            f"Rate limit exceeded for {client_id} on {endpoint}",
            client_id=client_id, endpoint=endpoint
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure root logging.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: One JSON object per line; plain text otherwise
        log_file: Optional file receiving the same records as stdout
    """
    if json_format:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter('%(asctime)s %(levelname)s [%(name)s] %(message)s')

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setFormatter(formatter)

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level.upper())


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind a request ID to the current context, generating one if absent."""
    request_id = request_id or uuid.uuid4().hex
    request_id_var.set(request_id)
    return request_id


audit_log = AuditLogger()
