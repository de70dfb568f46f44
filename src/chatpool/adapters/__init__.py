"""Upstream adapters."""

from chatpool.adapters.upstream import HttpCompletionAdapter, classify_status

__all__ = ["HttpCompletionAdapter", "classify_status"]
