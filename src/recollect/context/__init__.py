"""Prompt-view assembly."""

from recollect.context.reconciler import (
    MISSING_RESULT_STATUS,
    missing_result_part,
    reconcile_tool_calls,
)

__all__ = ["MISSING_RESULT_STATUS", "missing_result_part", "reconcile_tool_calls"]
