from __future__ import annotations

import sys
import warnings

_DEBUG_LOG = False


def set_debug_logging(enabled: bool) -> None:
    global _DEBUG_LOG
    _DEBUG_LOG = enabled


def _debug_log(message: str) -> None:
    if _DEBUG_LOG:
        print(f"[proofread debug] {message}", file=sys.stderr)


def warn_skipped_rule(rule_id: str, pattern: str, exc: Exception) -> None:
    """Warn that a rule was left out of the current transform."""
    warnings.warn(
        f"Invalid regex pattern in replacement rule {rule_id!r}: {pattern!r} ({exc})",
        RuntimeWarning,
        stacklevel=3,
    )
