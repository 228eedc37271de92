"""Session-scoped duplicate detection for rendering elements.

The viewer keeps re-rendering the same canvas / blob image for a while after
the page changes. The tracker remembers every identifier handed out during a
capture session so the loop can tell a stale re-render from new content.

Design:
- One tracker per document capture session, never shared.
- Exact string match, no normalization of identifiers.
- Grows monotonically; there is no removal.
"""
from __future__ import annotations

from typing import Set


class DeduplicationTracker:
    def __init__(self):
        self._seen: Set[str] = set()

    def contains(self, identifier: str) -> bool:
        return identifier in self._seen

    def add(self, identifier: str) -> None:
        self._seen.add(identifier)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._seen

    def __len__(self) -> int:
        return len(self._seen)
