"""Validation package."""

from roomledger.validation.validator import LedgerValidator

__all__ = ["LedgerValidator"]
