import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, List, Mapping, Optional, Union

from config import ALL_CATEGORIES, SEARCH_DEBOUNCE_SECONDS, SORT_MOST_REPLIED, SORT_NEWEST, SORT_OLDEST
from posts import Post
from reconcile import PostView

logger = logging.getLogger(__name__)


class SortMode(str, Enum):
    NEWEST = SORT_NEWEST
    OLDEST = SORT_OLDEST
    MOST_REPLIED = SORT_MOST_REPLIED


@dataclass(slots=True)
class PostFilters:
    q: str = ""
    category: str = ""
    sort: SortMode = SortMode.NEWEST

    def __post_init__(self):
        self.q = (self.q or "").strip()
        self.category = self.category or ""
        self.sort = SortMode(self.sort)

    @classmethod
    def coerce(cls, value: Union["PostFilters", Mapping[str, Any], None]) -> "PostFilters":
        if value is None:
            return cls()
        if isinstance(value, PostFilters):
            return value
        unknown = set(value) - set(cls.__slots__)
        if unknown:
            raise ValueError(f"Unknown filter(s): {', '.join(sorted(unknown))}")
        return cls(**value)

    @property
    def has_category(self) -> bool:
        return bool(self.category) and self.category.lower() != ALL_CATEGORIES

    @property
    def is_cacheable(self) -> bool:
        """Only the unfiltered, uncategorized listing may be served from cache."""
        return not self.q and not self.has_category


def matches_search(post: Post, query: str) -> bool:
    if not query:
        return True
    needle = query.lower()
    return (
        needle in (post.title or "").lower()
        or needle in (post.content or "").lower()
        or any(needle in tag.lower() for tag in post.tags)
    )


def matches_category(post: Post, category: str) -> bool:
    if not category or category.lower() == ALL_CATEGORIES:
        return True
    return (post.category or "").lower() == category.lower()


def filter_posts(posts: Iterable[Post], filters: PostFilters) -> List[Post]:
    return [
        post for post in posts
        if matches_search(post, filters.q) and matches_category(post, filters.category)
    ]


def sort_posts(posts: Iterable[Post], mode: SortMode) -> List[Post]:
    """Order posts by creation time. Reply-count ordering needs the view."""
    if mode is SortMode.OLDEST:
        return sorted(posts, key=lambda p: p.created_at)
    return sorted(posts, key=lambda p: p.created_at, reverse=True)


def sort_views(views: Iterable[PostView], mode: SortMode) -> List[PostView]:
    if mode is SortMode.MOST_REPLIED:
        # equal counts fall back to recency; sorted() keeps prior order for full ties
        return sorted(views, key=lambda v: (v.reply_count, v.post.created_at), reverse=True)
    if mode is SortMode.OLDEST:
        return sorted(views, key=lambda v: v.post.created_at)
    return sorted(views, key=lambda v: v.post.created_at, reverse=True)


class Debouncer:
    """Run a coroutine only after calls have been quiet for `delay` seconds."""

    def __init__(self, callback: Callable[..., Awaitable[Any]], delay: float = SEARCH_DEBOUNCE_SECONDS):
        self.callback = callback
        self.delay = delay
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def trigger(self, *args, **kwargs) -> asyncio.Task:
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run(args, kwargs))
        return self._task

    async def _run(self, args, kwargs):
        await asyncio.sleep(self.delay)
        return await self.callback(*args, **kwargs)

    def cancel(self):
        if self.pending:
            self._task.cancel()
            logger.debug("Superseded pending debounced call")
        self._task = None

    async def wait(self) -> Any:
        """Wait for the pending call, if any, and return its result."""
        if self._task is None or self._task.cancelled():
            return None
        return await self._task
