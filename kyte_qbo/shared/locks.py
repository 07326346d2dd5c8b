"""Per-key mutual exclusion for writers sharing one process"""

from collections.abc import Hashable, Iterator
from contextlib import contextmanager
from threading import Lock


class KeyedLock:
    """
    Hand out one lock per key and drop it once nobody holds or waits on it.

    Writers for different keys never block each other.
    """

    def __init__(self):
        self._guard = Lock()
        self._entries: dict[Hashable, list] = {}  # key -> [Lock, users]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._entries.setdefault(key, [Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
