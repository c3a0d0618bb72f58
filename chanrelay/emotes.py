"""Emote catalog seen by the relay.

The relay only needs the set of known token names to count ``:name:``
references. Catalog implementations must answer ``names()`` from memory;
anything that fetches remotely keeps its own cache and refreshes it outside
the registry lock.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol


class EmoteCatalog(Protocol):
    def names(self) -> frozenset[str]: ...


class StaticEmoteCatalog:
    def __init__(self, names: Iterable[str] = ()) -> None:
        self._names = frozenset(n.strip() for n in names if n and n.strip())

    def names(self) -> frozenset[str]:
        return self._names
