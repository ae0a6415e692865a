"""
In-memory keyed store and simulated clock for twins.

Each twin keeps one :class:`KeyedStore` per resource type. Records created via
POST can be read back via GET, listed in creation order, and paged through
with cursors the way vendor list endpoints do.
"""

from __future__ import annotations

import dataclasses
import json
import threading
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    """One page of a cursor-paginated listing.

    Attributes:
        data: Items on this page, in insertion order.
        has_more: True if at least one item remains after this page.
        cursor: Key of the last item returned (empty for an empty page).
        total: Number of items in the whole store.
    """

    data: list[T] = field(default_factory=list)
    has_more: bool = False
    cursor: str = ""
    total: int = 0

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "data": [to_jsonable(item) for item in self.data],
            "has_more": self.has_more,
            "total": self.total,
        }
        if self.cursor:
            result["cursor"] = self.cursor
        return result


def to_jsonable(value: Any) -> Any:
    """Convert dataclasses and pydantic models into plain JSON values."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [to_jsonable(v) for v in value]
    return value


class KeyedStore(Generic[T]):
    """Thread-safe ordered collection of records of one type.

    Keys keep the position of their first insertion; updating a key never
    moves it. IDs from :meth:`next_id` look like ``cus_000001``.

    Args:
        prefix: Prefix for generated IDs (e.g. "cus", "evt").
    """

    def __init__(self, prefix: str) -> None:
        self.prefix = prefix
        self._lock = threading.RLock()
        self._items: dict[str, T] = {}
        self._order: list[str] = []
        self._counter = 0

    def next_id(self) -> str:
        """Generate the next ID for this collection."""
        with self._lock:
            self._counter += 1
            return f"{self.prefix}_{self._counter:06d}"

    def set(self, key: str, value: T) -> None:
        """Insert or update a record. Updates keep the original position."""
        with self._lock:
            if key not in self._items:
                self._order.append(key)
            self._items[key] = value

    def get(self, key: str) -> T | None:
        with self._lock:
            return self._items.get(key)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._items

    def delete(self, key: str) -> bool:
        """Delete a record.

        Returns:
            True if the record existed.
        """
        with self._lock:
            if key not in self._items:
                return False
            del self._items[key]
            self._order.remove(key)
            return True

    def list(self) -> list[T]:
        """All records in insertion order."""
        with self._lock:
            return [self._items[k] for k in self._order]

    def list_ids(self) -> list[str]:
        with self._lock:
            return list(self._order)

    def count(self) -> int:
        with self._lock:
            return len(self._order)

    __len__ = count

    def filter(self, predicate: Callable[[str, T], bool]) -> list[T]:
        """Records matching ``predicate(key, value)``, in insertion order."""
        return self.filter_with_ids(predicate)[1]

    def filter_with_ids(self, predicate: Callable[[str, T], bool]) -> tuple[list[str], list[T]]:
        """Like :meth:`filter`, but also returns the matching keys."""
        with self._lock:
            entries = [(k, self._items[k]) for k in self._order]
        keys: list[str] = []
        values: list[T] = []
        for key, value in entries:
            if predicate(key, value):
                keys.append(key)
                values.append(value)
        return keys, values

    def paginate(self, cursor: str = "", limit: int = 0) -> Page[T]:
        """Return the page that starts after ``cursor``.

        Args:
            cursor: Key of the last item already seen ("" starts at the beginning).
                An unknown cursor also starts at the beginning.
            limit: Maximum number of items; zero or negative means all remaining.
        """
        with self._lock:
            start = 0
            if cursor:
                try:
                    start = self._order.index(cursor) + 1
                except ValueError:
                    start = 0

            total = len(self._order)
            if limit <= 0:
                limit = total

            end = min(start + limit, total)
            keys = self._order[start:end]
            return Page(
                data=[self._items[k] for k in keys],
                has_more=end < total,
                cursor=keys[-1] if keys else "",
                total=total,
            )

    def snapshot(self) -> dict[str, T]:
        """Independent copy of the key -> record mapping."""
        with self._lock:
            return dict(self._items)

    def load_snapshot(self, items: Mapping[str, T]) -> None:
        """Replace all contents. Keys are installed in lexicographic order."""
        with self._lock:
            self._items = dict(items)
            self._order = sorted(self._items)

    def reset(self) -> None:
        """Remove all records and restart ID generation at 1."""
        with self._lock:
            self._items = {}
            self._order = []
            self._counter = 0

    def to_json(self) -> str:
        return json.dumps(to_jsonable(self.snapshot()))

    def load_json(self, data: str | bytes, decode: Callable[[Any], T] | None = None) -> None:
        """Replace contents from a JSON object of key -> record.

        Args:
            data: JSON text.
            decode: Optional converter applied to each raw record.

        Raises:
            ValueError: If the document is not a JSON object.
        """
        raw = json.loads(data)
        if not isinstance(raw, dict):
            raise ValueError("snapshot must be a JSON object")
        if decode is not None:
            raw = {k: decode(v) for k, v in raw.items()}
        self.load_snapshot(raw)

    def __iter__(self) -> Iterator[T]:
        return iter(self.list())


class SimulatedClock:
    """Per-twin clock whose offset from wall-clock time can be advanced."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._offset = timedelta(0)

    def now(self) -> datetime:
        with self._lock:
            return datetime.now(UTC) + self._offset

    def advance(self, delta: timedelta) -> None:
        with self._lock:
            self._offset += delta

    def reset(self) -> None:
        with self._lock:
            self._offset = timedelta(0)

    @property
    def offset(self) -> timedelta:
        with self._lock:
            return self._offset
