"""Utility modules for logging, retries and run artifacts."""
from .connection import with_retry, retry_policy, RETRYABLE_EXCEPTIONS
from .logging_config import (
    setup_logging,
    timed,
    timed_section,
    perf_logger,
)
from .run_log import (
    RunContext,
    ChangeRecord,
    setup_audit_logging,
    read_change_records,
)

__all__ = [
    "with_retry",
    "retry_policy",
    "RETRYABLE_EXCEPTIONS",
    "setup_logging",
    "timed",
    "timed_section",
    "perf_logger",
    "RunContext",
    "ChangeRecord",
    "setup_audit_logging",
    "read_change_records",
]
