"""Adapters for external state: the split ledger."""

from app.adapters.split_store import InMemorySplitLedger, SplitLedger, SplitNotFoundError

__all__ = ["InMemorySplitLedger", "SplitLedger", "SplitNotFoundError"]
