from __future__ import annotations

from .models import Snapshot


class SnapshotStore:
    """Holds the latest snapshot; ``None`` means no repository or never polled."""

    def __init__(self) -> None:
        self._snapshot: Snapshot | None = None

    def get(self) -> Snapshot | None:
        return self._snapshot

    def replace(self, snapshot: Snapshot) -> None:
        self._snapshot = snapshot

    def clear(self) -> None:
        self._snapshot = None
