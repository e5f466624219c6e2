from typing import Generic, Iterator, List, Optional, Protocol, Sequence, TypeVar

from identifiers import EntityId


class Entity(Protocol):
    id: EntityId
    is_optimistic: bool


E = TypeVar("E", bound=Entity)


class EntityManager(Generic[E]):
    """Ordered in-memory collection of posts or replies.

    Entities are never mutated in place; every change swaps in a new object,
    so a snapshot is a shallow copy of the list.
    """

    def __init__(self, items: Sequence[E] = ()) -> None:
        self._items: List[E] = list(items)

    def __iter__(self) -> Iterator[E]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    @property
    def items(self) -> List[E]:
        return list(self._items)

    def index_of(self, entity_id: EntityId) -> Optional[int]:
        for i, item in enumerate(self._items):
            if item.id == entity_id:
                return i
        return None

    def get(self, entity_id: EntityId) -> Optional[E]:
        i = self.index_of(entity_id)
        return self._items[i] if i is not None else None

    def find_by_token(self, token: str) -> Optional[E]:
        """Look an entity up by the string form of either identifier variant."""
        for item in self._items:
            if str(item.id) == token:
                return item
        return None

    def insert_front(self, entity: E) -> None:
        self._items.insert(0, entity)
        self._added(entity)

    def append(self, entity: E) -> None:
        self._items.append(entity)
        self._added(entity)

    def replace(self, entity_id: EntityId, entity: E) -> bool:
        """Swap the entity with the given id for another, keeping its position."""
        i = self.index_of(entity_id)
        if i is None:
            return False
        old = self._items[i]
        self._items[i] = entity
        self._removed(old)
        self._added(entity)
        return True

    def remove(self, entity_id: EntityId) -> Optional[E]:
        i = self.index_of(entity_id)
        if i is None:
            return None
        old = self._items.pop(i)
        self._removed(old)
        return old

    def snapshot(self) -> List[E]:
        return list(self._items)

    def restore(self, snapshot: Sequence[E]) -> None:
        self.replace_all(snapshot)

    def replace_all(self, items: Sequence[E]) -> None:
        self._items = list(items)
        self._reset()

    def optimistic(self) -> List[E]:
        return [item for item in self._items if item.is_optimistic]

    # Hooks for derived indexes
    def _added(self, entity: E) -> None:
        pass

    def _removed(self, entity: E) -> None:
        pass

    def _reset(self) -> None:
        pass
