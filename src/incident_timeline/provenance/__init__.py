"""
Append-only incident timeline chains and their verifier.
"""

from .hashchain import CHAIN_BROKEN, HASH_MISMATCH, Verdict, VerificationResult, verify
from .log import ChainedLog, ChainState, append_entry
from .store import EntryStore, JsonlEntryStore, MemoryEntryStore, store_path

__all__ = [
    "CHAIN_BROKEN",
    "HASH_MISMATCH",
    "ChainState",
    "ChainedLog",
    "EntryStore",
    "JsonlEntryStore",
    "MemoryEntryStore",
    "Verdict",
    "VerificationResult",
    "append_entry",
    "store_path",
    "verify",
]
