"""Logging setup: JSON records for CI logs, with Gitea credentials scrubbed."""

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

REDACTED = "***REDACTED***"

# Dictionary keys whose values are never logged
SECRET_KEYS = re.compile(r"token|secret|password|credential|authorization", re.IGNORECASE)

# "key=value" / "key: value" pairs inside free text, including "Authorization: token X"
_INLINE_SECRET = re.compile(
    r"(?P<key>authorization|access_token|token|secret|password)"
    r"\s*[=:]\s*(?:token\s+)?[^\s,;&\"']+",
    re.IGNORECASE,
)

# Attributes passed through ``extra=`` that end up in the JSON payload
EXTRA_FIELDS = ("owner", "repo", "branch", "base", "head", "pr_number", "attempt", "status_code")

_known_secrets: Set[str] = set()


def register_secret(value: Optional[str]) -> None:
    """Scrub this exact value from every message formatted afterwards."""
    if value and len(value) >= 4:
        _known_secrets.add(value)


def redact_text(text: str) -> str:
    for secret in _known_secrets:
        text = text.replace(secret, REDACTED)
    return _INLINE_SECRET.sub(lambda m: f"{m.group('key')}={REDACTED}", text)


def redact_sensitive(data: Any) -> Any:
    """Redact credentials from a string, or from a dict/list payload recursively."""
    if isinstance(data, dict):
        return {
            k: REDACTED if SECRET_KEYS.search(str(k)) else redact_sensitive(v)
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [redact_sensitive(item) for item in data]
    if isinstance(data, str):
        return redact_text(data)
    return data


class RepositoryContext(logging.Filter):
    """Stamps owner/repo on records that do not carry them already."""

    def __init__(self, owner: str = "", repo: str = ""):
        super().__init__()
        self.owner = owner
        self.repo = repo

    def filter(self, record: logging.LogRecord) -> bool:
        if self.owner and not hasattr(record, "owner"):
            record.owner = self.owner
        if self.repo and not hasattr(record, "repo"):
            record.repo = self.repo
        return True


class PlainFormatter(logging.Formatter):
    """Human-readable lines, scrubbed like the JSON output."""

    def format(self, record: logging.LogRecord) -> str:
        return redact_text(super().format(record))


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": redact_text(record.getMessage()),
        }
        for field in EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value

        if record.exc_info:
            payload["exception"] = redact_text(self.formatException(record.exc_info))

        return json.dumps(payload)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def setup_logging(level: str = "INFO", structured: bool = True,
                  context: Optional[Dict[str, str]] = None) -> None:
    """Configure the root logger.

    Records go to stderr so command output on stdout stays machine readable.

    Args:
        level: Log level name, case-insensitive
        structured: Emit JSON lines instead of plain text
        context: Optional ``owner``/``repo`` stamped onto every record
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers = []

    handler = logging.StreamHandler()
    if structured:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(PlainFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    if context:
        handler.addFilter(RepositoryContext(**context))
    root_logger.addHandler(handler)

    # httpx logs every request URL at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
