"""
RoomLedger - Source Package

Shared-household expense ledger: members of a group (an apartment) log
shared expenses, split them, settle up with peer-to-peer payments and
see who owes whom.

DESIGN PRINCIPLES:
1. Balances are derived, never stored
2. Only persisted split rows attribute a share to a member
3. A payment moves balances only after the recipient confirms it
4. Every state change is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "RoomLedger Team"
