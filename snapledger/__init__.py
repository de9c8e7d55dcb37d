"""
SnapLedger - Source Package

A personal ledger whose transactions and categories live either in a
device-local store or in a remote multi-user store, depending on whether
a user is signed in.

DESIGN PRINCIPLES:
1. The active store is the single source of truth
2. Local state changes optimistically and rolls back on failure
3. Conflicts resolve per record: last modified wins, ties keep what we have
4. Corrupt local data never crashes the app
5. Storage layer is swappable
"""

__version__ = "0.2.0"
__author__ = "SnapLedger Team"
