from __future__ import annotations

import logging
import re
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog


run_id_var: ContextVar[str] = ContextVar('run_id', default='')

# Subject-identifying variables in SDTM/ADaM and raw CRF extracts
SENSITIVE_FIELDS = {
    'USUBJID', 'SUBJID', 'PATNUM', 'PATIENT_NUMBER', 'AGE', 'SEX', 'RACE',
    'ETHNIC', 'BRTHDTC', 'DTHDTC', 'SITEID', 'INVNAM',
}

_SUBJECT_ID_PATTERNS = [
    re.compile(r'\b\d{2}-\d{3}-\d{4}\b'),  # USUBJID like 01-701-1015
    re.compile(r'\bSUBJ\d{3,8}\b'),
    re.compile(r'\bPT\d{3,8}\b'),
]

_SCRUB_VALUES = True
_CONFIGURED = False


def redact_text(message: str) -> str:
    """Redact subject identifier patterns from free text."""
    redacted = message
    for pattern in _SUBJECT_ID_PATTERNS:
        redacted = pattern.sub('[REDACTED]', redacted)
    return redacted


def redact_pii(logger, name, event_dict):
    """Redact subject-identifying fields from log entries."""
    if not _SCRUB_VALUES:
        return event_dict
    for key in list(event_dict.keys()):
        if key.upper() in SENSITIVE_FIELDS:
            event_dict[key] = '***REDACTED***'
        elif isinstance(event_dict[key], str):
            event_dict[key] = redact_text(event_dict[key])
    return event_dict


def add_run_id(logger, name, event_dict):
    run_id = run_id_var.get('')
    if run_id:
        event_dict.setdefault('run_id', run_id)
    return event_dict


def configure_logging(level: str = "INFO", json_output: bool = False, scrub_values: bool = True) -> None:
    """Route structlog through stdlib logging so run logs can capture events."""
    global _SCRUB_VALUES, _CONFIGURED

    _SCRUB_VALUES = scrub_values

    root = logging.getLogger()
    root.setLevel(level.upper())
    if not _CONFIGURED:
        handler = logging.StreamHandler(stream=sys.stderr)
        handler.setFormatter(logging.Formatter('%(message)s'))
        root.addHandler(handler)

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=False)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_run_id,
            redact_pii,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
    _CONFIGURED = True


def get_logger(name: str, **context: Dict[str, Any]):
    """Lazy structured logger; it picks up the configuration active at each call."""
    return structlog.get_logger(name, **context)


def set_run_id(run_id: Optional[str] = None) -> str:
    if run_id is None:
        run_id = uuid.uuid4().hex[:12]
    run_id_var.set(run_id)
    return run_id


def get_run_id() -> str:
    return run_id_var.get('')
