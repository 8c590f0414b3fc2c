"""Client-side coordinator for encrypted insurance claims on a confidential ledger."""

__version__ = "0.1.0"
