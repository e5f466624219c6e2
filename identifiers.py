import itertools
import time
from dataclasses import dataclass
from typing import Callable, Union

from config import TEMP_ID_PREFIX


@dataclass(frozen=True, slots=True)
class LocalId:
    """Client-only identifier of an entity awaiting confirmation."""
    token: str

    def __str__(self) -> str:
        return self.token


@dataclass(frozen=True, slots=True)
class DurableId:
    """Identifier assigned and recognized by the remote store."""
    value: str

    def __str__(self) -> str:
        return self.value


EntityId = Union[LocalId, DurableId]


def as_entity_id(value: Union[EntityId, str]) -> EntityId:
    if isinstance(value, (LocalId, DurableId)):
        return value
    if not isinstance(value, str) or not value:
        raise ValueError(f"Invalid entity identifier: {value!r}")
    return DurableId(value)


class TempIdFactory:
    """Session-unique temporary identifiers derived from a monotonic clock."""

    def __init__(self, clock: Callable[[], int] = time.monotonic_ns):
        self._clock = clock
        self._counter = itertools.count()

    def new(self) -> LocalId:
        return LocalId(f"{TEMP_ID_PREFIX}-{self._clock()}-{next(self._counter)}")
