from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

from entities import EntityManager
from identifiers import DurableId, EntityId
from models import PostRecord, to_timestamp
from utils import timestamp


@dataclass(slots=True)
class Post:
    id: EntityId
    author_id: str
    author_handle: str
    title: str
    content: str
    category: str
    tags: tuple[str, ...] = ()
    created_at: float = field(default_factory=timestamp)
    updated_at: Optional[float] = None
    is_optimistic: bool = False

    def __str__(self) -> str:
        optimistic_marker = " [PENDING]" if self.is_optimistic else ""
        return f"Post {self.id}: {self.title[:50]}{optimistic_marker}"

    @classmethod
    def from_record(cls, record: PostRecord) -> "Post":
        return cls(
            id=DurableId(record.id),
            author_id=record.uid,
            author_handle=record.user_email,
            title=record.title,
            content=record.content,
            category=record.category,
            tags=tuple(record.tags),
            created_at=to_timestamp(record.created_at),
            updated_at=to_timestamp(record.updated_at),
        )

    def merged(self, changes: Dict[str, Any], updated_at: float) -> "Post":
        """Copy of this post with a partial update applied."""
        changes = dict(changes)
        if "tags" in changes:
            changes["tags"] = tuple(changes["tags"] or ())
        return replace(self, **changes, updated_at=updated_at)


class PostManager(EntityManager[Post]):
    """Posts held by the engine, most recent first."""
