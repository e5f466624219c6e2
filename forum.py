import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional, Union

from pydantic import ValidationError

from cache import TTLCache
from config import (LOCAL_STORAGE_PATH, ME_PATH, POSTS_CACHE_TTL, POSTS_LISTING_KEY, POSTS_PATH,
                    REPLIES_PATH, SEARCH_DEBOUNCE_SECONDS)
from coordinator import ConflictPolicy, ForumState, MutationCoordinator
from exceptions import AuthFailure, ForumError
from identifiers import EntityId, TempIdFactory, as_entity_id
from identity import CurrentUser, RedirectHook, SessionManager, TokenRefresher
from models import CurrentUserRecord
from posts import Post, PostManager
from query import Debouncer, PostFilters, SortMode, filter_posts, sort_posts, sort_views
from reconcile import PostView, decode_json, parse_posts, parse_replies, replies_for, reply_count, with_reply_counts
from replies import Reply, ReplyManager
from storage import DraftStore, LocalStorage
from transport import Transport
from utils import timestamp

logger = logging.getLogger(__name__)

FiltersLike = Union[PostFilters, Mapping[str, Any], None]


@dataclass(slots=True)
class FetchResult:
    data: List[Post]
    error: Optional[str] = None
    is_loading: bool = False
    from_cache: bool = False


@dataclass(slots=True)
class PostDetail:
    post: Post
    replies: List[Reply]


class ForumSync:
    """Main forum engine class that orchestrates all components.

    Holds the posts and replies the UI renders, serves the unfiltered post
    listing from a TTL cache, and routes every mutation through the
    optimistic coordinator. Read operations never raise: a failed read sets
    `error` and yields an empty result.
    """

    def __init__(self, transport: Transport, session: SessionManager,
                 drafts: Optional[DraftStore] = None,
                 cache: Optional[TTLCache] = None,
                 ids: Optional[TempIdFactory] = None,
                 clock: Callable[[], float] = timestamp,
                 policy: ConflictPolicy = ConflictPolicy.LATEST_DISPATCH,
                 debounce_delay: float = SEARCH_DEBOUNCE_SECONDS):
        self.transport = transport
        self.session = session
        self.drafts = drafts
        self.cache = cache or TTLCache(ttl=POSTS_CACHE_TTL)
        self.state = ForumState(PostManager(), ReplyManager())
        self.is_loading = False
        self.error: Optional[str] = None
        self.current_user: Optional[CurrentUser] = None
        self.last_filters = PostFilters()
        self._listeners: List[Callable[[], None]] = []

        self.coordinator = MutationCoordinator(
            self.state, transport, self.cache, session,
            current_user=lambda: self.current_user,
            ids=ids, clock=clock, policy=policy,
            on_change=self._notify, drafts=drafts,
        )
        self.search_debouncer = Debouncer(self.fetch_posts, delay=debounce_delay)

    @classmethod
    def connect(cls, base_url: Optional[str] = None, storage_path: str = LOCAL_STORAGE_PATH,
                refresher: Optional[TokenRefresher] = None, on_redirect: Optional[RedirectHook] = None,
                **kwargs) -> "ForumSync":
        """Build an engine talking to the store at `base_url` over httpx."""
        storage = LocalStorage(storage_path)
        session = SessionManager(storage, refresher=refresher, on_redirect=on_redirect)
        transport = Transport(session, base_url=base_url)
        return cls(transport, session, drafts=DraftStore(storage), **kwargs)

    async def aclose(self):
        self.search_debouncer.cancel()
        await self.transport.aclose()

    @property
    def posts(self) -> List[Post]:
        return self.state.posts.items

    @property
    def replies(self) -> List[Reply]:
        return self.state.replies.items

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Call `listener` whenever held posts or replies change."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _notify(self):
        for listener in list(self._listeners):
            listener()

    # =========================================================================
    # READS
    # =========================================================================

    async def start(self):
        """Resolve the identity, then load posts and replies."""
        await self.fetch_current_user()
        await self.fetch_posts()
        await self.fetch_replies()

    async def fetch_current_user(self) -> Optional[CurrentUser]:
        if not await self.session.get_token():
            self.current_user = await self.session.known_user()
            return self.current_user

        try:
            response = await self.transport.authenticated_request(ME_PATH)
            record = CurrentUserRecord.model_validate(await decode_json(response))
        except AuthFailure as e:
            logger.warning("Failed to fetch current user: %s", e)
            await self.session.handle_auth_error()
            self.current_user = None
            return None
        except (ForumError, ValidationError) as e:
            logger.error("Failed to fetch current user: %s", e)
            self.current_user = await self.session.identity_from_token() or await self.session.known_user()
            return self.current_user

        self.current_user = CurrentUser(uid=record.uid, email=record.email, name=record.name)
        await self.session.remember_user(self.current_user)
        return self.current_user

    async def fetch_posts(self, filters: FiltersLike = None) -> FetchResult:
        try:
            filters = PostFilters.coerce(filters)
        except ValueError as e:
            logger.error("Rejected post filters: %s", e)
            self.error = str(e)
            return FetchResult([], error=self.error)
        self.last_filters = filters

        if filters.is_cacheable:
            cached = self.cache.get(POSTS_LISTING_KEY)
            if cached is not None:
                logger.debug("Serving %d posts from cache", len(cached))
                ordered = sort_posts(cached, filters.sort)
                self.state.posts.replace_all(ordered)
                self._notify()
                return FetchResult(list(ordered), from_cache=True)

        self.is_loading = True
        self.error = None
        try:
            response = await self.transport.public_request(POSTS_PATH)
            fetched = parse_posts(await decode_json(response))
        except ForumError as e:
            logger.error("Failed to fetch posts: %s", e)
            self.error = e.message
            self.is_loading = False
            return FetchResult([], error=e.message)

        fetched = sort_posts(filter_posts(fetched, filters), filters.sort)
        if filters.is_cacheable:
            self.cache.put(POSTS_LISTING_KEY, tuple(fetched))

        self.state.posts.replace_all(fetched)
        self.is_loading = False
        self._notify()
        return FetchResult(list(fetched))

    async def fetch_post(self, post_id: Union[EntityId, str]) -> Optional[PostDetail]:
        """Load one post and its replies from both listings."""
        post_id = as_entity_id(post_id)
        self.is_loading = True
        self.error = None
        try:
            posts_response, replies_response = await asyncio.gather(
                self.transport.public_request(POSTS_PATH),
                self.transport.public_request(REPLIES_PATH),
            )
            all_posts = parse_posts(await decode_json(posts_response))
            all_replies = parse_replies(await decode_json(replies_response))
        except ForumError as e:
            logger.error("Failed to fetch post %s: %s", post_id, e)
            self.error = e.message
            self.is_loading = False
            return None

        self.is_loading = False
        post = next((p for p in all_posts if p.id == post_id), None)
        if post is None:
            self.error = "Post not found"
            return None
        return PostDetail(post, replies_for(post.id, all_replies))

    async def fetch_replies(self) -> List[Reply]:
        try:
            response = await self.transport.public_request(REPLIES_PATH)
            fetched = parse_replies(await decode_json(response))
        except ForumError as e:
            logger.error("Failed to fetch replies: %s", e)
            self.error = e.message
            return []

        self.state.replies.replace_all(fetched)
        self._notify()
        return fetched

    async def refresh(self):
        """Drop the cache and reload posts (with the last filters) and replies."""
        self.cache.clear()
        await self.fetch_posts(self.last_filters)
        await self.fetch_replies()

    # =========================================================================
    # VIEW
    # =========================================================================

    def reply_count(self, post: Post) -> int:
        return reply_count(post, self.state.replies.index)

    def view(self, filters: FiltersLike = None) -> List[PostView]:
        """Held posts with derived reply counts, filtered and sorted.

        Recomputed on every call, so a most-replied view read before replies
        have loaded shows zero counts and re-sorts once they arrive.
        """
        filters = PostFilters.coerce(filters) if filters is not None else self.last_filters
        views = with_reply_counts(filter_posts(self.state.posts, filters), self.state.replies.index)
        return sort_views(views, filters.sort)

    def search(self, text: str, category: str = "", sort: Union[SortMode, str] = SortMode.NEWEST) -> asyncio.Task:
        """Debounced filtered fetch; only the last call in a quiet period runs."""
        return self.search_debouncer.trigger({"q": text, "category": category, "sort": sort})

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    async def create_post(self, data, draft_key: Optional[str] = None) -> Post:
        return await self.coordinator.create_post(data, draft_key=draft_key)

    async def update_post(self, post_id: Union[EntityId, str], changes) -> Post:
        return await self.coordinator.update_post(post_id, changes)

    async def delete_post(self, post_id: Union[EntityId, str]) -> bool:
        return await self.coordinator.delete_post(post_id)

    async def create_reply(self, data, draft_key: Optional[str] = None) -> Reply:
        return await self.coordinator.create_reply(data, draft_key=draft_key)

    async def update_reply(self, reply_id: Union[EntityId, str], changes) -> Reply:
        return await self.coordinator.update_reply(reply_id, changes)

    async def delete_reply(self, reply_id: Union[EntityId, str]) -> bool:
        return await self.coordinator.delete_reply(reply_id)
