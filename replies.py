from collections import defaultdict
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Optional

from entities import EntityManager
from identifiers import DurableId, EntityId
from models import ReplyRecord, to_timestamp
from utils import timestamp


@dataclass(slots=True)
class Reply:
    id: EntityId
    post_id: EntityId
    author_id: str
    author_handle: str
    content: str
    parent_reply_id: Optional[str] = None
    created_at: float = field(default_factory=timestamp)
    updated_at: Optional[float] = None
    is_optimistic: bool = False

    def __str__(self) -> str:
        optimistic_marker = " [PENDING]" if self.is_optimistic else ""
        return f"Reply {self.id} on {self.post_id}: {self.content[:50]}{optimistic_marker}"

    @classmethod
    def from_record(cls, record: ReplyRecord) -> "Reply":
        return cls(
            id=DurableId(record.id),
            post_id=DurableId(record.post_id),
            author_id=record.uid,
            author_handle=record.user_email,
            content=record.content,
            parent_reply_id=record.parent_reply_id,
            created_at=to_timestamp(record.created_at),
            updated_at=to_timestamp(record.updated_at),
        )

    def merged(self, changes: Dict[str, Any], updated_at: float) -> "Reply":
        return replace(self, **changes, updated_at=updated_at)


class ReplyIndex:
    """Post reference -> ids of the replies held for it."""

    def __init__(self) -> None:
        self._by_post: dict[EntityId, set[EntityId]] = defaultdict(set)

    def add(self, reply: Reply) -> None:
        self._by_post[reply.post_id].add(reply.id)

    def discard(self, reply: Reply) -> None:
        ids = self._by_post.get(reply.post_id)
        if ids is None:
            return
        ids.discard(reply.id)
        if not ids:
            del self._by_post[reply.post_id]

    def rebuild(self, replies: Iterable[Reply]) -> None:
        self._by_post = defaultdict(set)
        for reply in replies:
            self.add(reply)

    def count(self, post_ref: EntityId) -> int:
        ids = self._by_post.get(post_ref)
        return len(ids) if ids else 0

    def reply_ids(self, post_ref: EntityId) -> frozenset[EntityId]:
        return frozenset(self._by_post.get(post_ref, ()))


class ReplyManager(EntityManager[Reply]):
    """Replies held by the engine, in arrival order, with a per-post index."""

    def __init__(self, items: Iterable[Reply] = ()) -> None:
        super().__init__(list(items))
        self.index = ReplyIndex()
        self.index.rebuild(self._items)

    def _added(self, entity: Reply) -> None:
        self.index.add(entity)

    def _removed(self, entity: Reply) -> None:
        self.index.discard(entity)

    def _reset(self) -> None:
        self.index.rebuild(self._items)
