"""In-memory caches for remote entities."""

from typing import Generic, Iterator, Optional, Protocol, TypeVar

from redtimer.core.models import Issue


class _Identified(Protocol):
    id: int


T = TypeVar("T", bound=_Identified)


class EntityCache(Generic[T]):
    """Ordered list of entities that is replaced wholesale on refresh."""

    def __init__(self) -> None:
        self._items: list[T] = []

    def replace(self, items: list[T]) -> None:
        """Replace the cache contents.

        Args:
            items: New entities, in display order
        """
        self._items = list(items)

    def get(self, entity_id: int) -> Optional[T]:
        """Get entity by identifier, or None if not cached."""
        for item in self._items:
            if item.id == entity_id:
                return item
        return None

    def index_of(self, entity_id: int) -> int:
        """Get list position of an entity.

        Returns:
            Position in the cache, or -1 if not cached
        """
        for index, item in enumerate(self._items):
            if item.id == entity_id:
                return index
        return -1

    def ids(self) -> list[int]:
        """Get identifiers in display order."""
        return [item.id for item in self._items]

    def items(self) -> list[T]:
        """Get a copy of the cached entities."""
        return list(self._items)

    def __getitem__(self, index: int) -> T:
        return self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)


class RecentIssues:
    """Most-recently-used issue list.

    Newest first, bounded by capacity, never holds the same issue id twice.
    """

    DEFAULT_CAPACITY = 10

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        """Initialize recent issue list.

        Args:
            capacity: Maximum number of issues kept

        Raises:
            ValueError: If capacity is not positive
        """
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._issues: list[Issue] = []

    def add(self, issue: Issue) -> None:
        """Put an issue at the front of the list.

        An older entry with the same id is dropped and the list is cropped
        to capacity.

        Args:
            issue: Issue to add
        """
        self._issues = [i for i in self._issues if i.id != issue.id]
        self._issues.insert(0, issue)
        del self._issues[self.capacity :]

    def ids(self) -> list[int]:
        """Get issue identifiers, newest first."""
        return [issue.id for issue in self._issues]

    def items(self) -> list[Issue]:
        """Get a copy of the issues, newest first."""
        return list(self._issues)

    def __getitem__(self, index: int) -> Issue:
        return self._issues[index]

    def __len__(self) -> int:
        return len(self._issues)

    def __iter__(self) -> Iterator[Issue]:
        return iter(self._issues)
