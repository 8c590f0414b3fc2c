"""Ledger client adapters."""

from .base import LedgerClient
from .http_client import HttpLedgerClient
from .memory import InMemoryLedger

__all__ = ["LedgerClient", "HttpLedgerClient", "InMemoryLedger"]
