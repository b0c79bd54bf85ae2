"""Settlement idempotency store.

Keys identify a single authorization (the base58 delegate signature). A key
is claimed before relaying, confirmed with its receipt on success, and
released if the ledger rejects the settlement so the client may retry.
"""

from __future__ import annotations

import threading
from typing import Optional, Protocol

from x402_near.types import SettlementReceipt


class SettlementStore(Protocol):
    def claim(self, key: str) -> bool:
        """Reserve a key. Returns False if it is already claimed or settled."""
        ...

    def confirm(self, key: str, receipt: SettlementReceipt) -> None:
        ...

    def release(self, key: str) -> None:
        ...

    def get(self, key: str) -> Optional[SettlementReceipt]:
        ...


class InMemorySettlementStore:
    """Process-local store. Share one instance by reference between components."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: set[str] = set()
        self._settled: dict[str, SettlementReceipt] = {}

    def claim(self, key: str) -> bool:
        with self._lock:
            if key in self._pending or key in self._settled:
                return False
            self._pending.add(key)
            return True

    def confirm(self, key: str, receipt: SettlementReceipt) -> None:
        with self._lock:
            self._pending.discard(key)
            self._settled[key] = receipt

    def release(self, key: str) -> None:
        with self._lock:
            self._pending.discard(key)

    def get(self, key: str) -> Optional[SettlementReceipt]:
        with self._lock:
            return self._settled.get(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._settled)
