"""Reconciliation core: pure diffing of desired against on-chain registry state."""

from __future__ import annotations

from .apply import apply_ops
from .engine import diff, values_equal
from .plan import OpCounts, describe, summarize

__all__ = ["OpCounts", "apply_ops", "describe", "diff", "summarize", "values_equal"]
