"""Optimistic create/update/delete of posts and replies.

Each operation changes the held collection first, then asks the store. A
confirmed create swaps the placeholder for the store's entity; a confirmed
update swaps in the canonical entity. A failed create drops its placeholder;
a failed update or delete puts back the whole collection as it was before
the optimistic change, not just the touched entity.

Nothing serializes mutations against the same entity. Which response gets
applied is decided by the conflict policy: with LATEST_DISPATCH each
dispatch bumps a per-entity generation and only the newest generation may
touch local state; with LAST_RESPONSE whatever resolves last wins.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ValidationError

from cache import TTLCache
from config import POSTS_LISTING_KEY, POSTS_PATH, REPLIES_PATH
from entities import EntityManager
from exceptions import AuthFailure, ForumError, PendingConfirmationError, ReconciliationError, normalize_error
from identifiers import DurableId, EntityId, LocalId, TempIdFactory, as_entity_id
from identity import CurrentUser, SessionManager, author_for
from models import PostCreate, PostUpdate, ReplyCreate, ReplyUpdate
from posts import Post, PostManager
from reconcile import decode_json, parse_post, parse_reply, resolve_post_ref
from replies import Reply, ReplyManager
from storage import DraftStore
from transport import Transport
from utils import timestamp

logger = logging.getLogger(__name__)


def _validated(model, data) -> BaseModel:
    """Validate caller input, reporting a rejection the way the store would."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(dict(data))
    except ValidationError as exc:
        raise normalize_error(exc) from exc


class ConflictPolicy(str, Enum):
    LATEST_DISPATCH = "latest-dispatch"
    LAST_RESPONSE = "last-response"


class GenerationTracker:
    """Monotonic per-entity counter of dispatched mutations."""

    def __init__(self) -> None:
        self._current: Dict[tuple, int] = {}

    def dispatch(self, key: tuple) -> int:
        generation = self._current.get(key, 0) + 1
        self._current[key] = generation
        return generation

    def is_current(self, key: tuple, generation: int) -> bool:
        return self._current.get(key) == generation

    def current(self, key: tuple) -> int:
        return self._current.get(key, 0)


@dataclass(slots=True)
class ForumState:
    posts: PostManager
    replies: ReplyManager


class MutationCoordinator:
    def __init__(
        self,
        state: ForumState,
        transport: Transport,
        cache: TTLCache,
        session: SessionManager,
        current_user: Callable[[], Optional[CurrentUser]],
        ids: Optional[TempIdFactory] = None,
        clock: Callable[[], float] = timestamp,
        policy: ConflictPolicy = ConflictPolicy.LATEST_DISPATCH,
        on_change: Optional[Callable[[], None]] = None,
        drafts: Optional[DraftStore] = None,
    ):
        self.state = state
        self.transport = transport
        self.cache = cache
        self.session = session
        self.current_user = current_user
        self.ids = ids or TempIdFactory()
        self.clock = clock
        self.policy = ConflictPolicy(policy)
        self.on_change = on_change
        self.drafts = drafts
        self.generations = GenerationTracker()
        self.pending_creates: set[LocalId] = set()
        # placeholder -> confirmed entity, kept while a snapshot may still hold it
        self.promotions: Dict[LocalId, Any] = {}
        self._snapshots_held = 0

    # =========================================================================
    # POSTS
    # =========================================================================

    async def create_post(self, data: Union[PostCreate, Mapping[str, Any]],
                          draft_key: Optional[str] = None) -> Post:
        payload = _validated(PostCreate, data)
        author = author_for(self.current_user())
        placeholder = Post(
            id=self.ids.new(),
            author_id=author.author_id,
            author_handle=author.author_handle,
            title=payload.title,
            content=payload.content,
            category=payload.category,
            tags=tuple(payload.tags),
            created_at=self.clock(),
            is_optimistic=True,
        )
        created = await self._create(
            self.state.posts, placeholder, POSTS_PATH, payload.to_wire(),
            parse_post, self.state.posts.insert_front,
        )
        await self._discard_draft(draft_key)
        return created

    async def update_post(self, post_id: Union[EntityId, str],
                          changes: Union[PostUpdate, Mapping[str, Any]]) -> Post:
        update = _validated(PostUpdate, changes)
        return await self._update("post", self.state.posts, POSTS_PATH, post_id, update.to_wire(), parse_post)

    async def delete_post(self, post_id: Union[EntityId, str]) -> bool:
        return await self._delete("post", self.state.posts, POSTS_PATH, post_id)

    # =========================================================================
    # REPLIES
    # =========================================================================

    async def create_reply(self, data: Mapping[str, Any], draft_key: Optional[str] = None) -> Reply:
        data = dict(data)
        raw_ref = data.pop("post_id", None)
        alias_ref = data.pop("postId", None)
        if raw_ref is None:
            raw_ref = alias_ref
        if raw_ref is None:
            raise ForumError("A reply needs the id of the post it answers")
        post_ref = resolve_post_ref(raw_ref, self.state.posts)
        payload = _validated(ReplyCreate, {**data, "post_id": str(post_ref)})
        author = author_for(self.current_user())
        placeholder = Reply(
            id=self.ids.new(),
            post_id=post_ref,
            author_id=author.author_id,
            author_handle=author.author_handle,
            content=payload.content,
            parent_reply_id=payload.parent_reply_id,
            created_at=self.clock(),
            is_optimistic=True,
        )
        created = await self._create(
            self.state.replies, placeholder, REPLIES_PATH, payload.to_wire(),
            parse_reply, self.state.replies.append,
        )
        await self._discard_draft(draft_key)
        return created

    async def update_reply(self, reply_id: Union[EntityId, str],
                           changes: Union[ReplyUpdate, Mapping[str, Any]]) -> Reply:
        update = _validated(ReplyUpdate, changes)
        return await self._update("reply", self.state.replies, REPLIES_PATH, reply_id, update.to_wire(), parse_reply)

    async def delete_reply(self, reply_id: Union[EntityId, str]) -> bool:
        return await self._delete("reply", self.state.replies, REPLIES_PATH, reply_id)

    # =========================================================================
    # SHARED FLOWS
    # =========================================================================

    async def _create(self, manager: EntityManager, placeholder, path: str, body: Dict[str, Any],
                      parse: Callable[[Any], Any], insert: Callable[[Any], None]):
        temp_id = placeholder.id
        self.pending_creates.add(temp_id)
        insert(placeholder)
        self._changed()

        try:
            try:
                response = await self.transport.authenticated_request(path, method="POST", json=body)
            except Exception as exc:
                error = normalize_error(exc)
                manager.remove(temp_id)
                self.pending_creates.discard(temp_id)
                self._changed()
                logger.warning("Create at %s failed, placeholder %s removed: %s", path, temp_id, error)
                await self._after_failure(error)
                if error is exc:
                    raise
                raise error from exc

            self.cache.invalidate(POSTS_LISTING_KEY)
            try:
                created = parse(await decode_json(response))
            except ReconciliationError:
                manager.remove(temp_id)
                self.pending_creates.discard(temp_id)
                self._changed()
                logger.error("Create at %s succeeded but its response could not be applied", path)
                raise

            if self._snapshots_held:
                self.promotions[temp_id] = created
            if not manager.replace(temp_id, created):
                # a snapshot restore dropped the placeholder meanwhile
                insert(created)
            self._changed()
            logger.info("Created %s (was %s)", created.id, temp_id)
            return created
        finally:
            self.pending_creates.discard(temp_id)

    async def _update(self, kind: str, manager: EntityManager, path: str, entity_id: Union[EntityId, str],
                      changes: Dict[str, Any], parse: Callable[[Any], Any]):
        entity_id = self._addressable(manager, entity_id)
        key = (kind, entity_id)
        snapshot = self._take_snapshot(manager)
        current = manager.get(entity_id)
        if current is not None:
            manager.replace(entity_id, current.merged(changes, updated_at=self.clock()))
        generation = self.generations.dispatch(key)
        self._changed()

        try:
            response = await self.transport.authenticated_request(
                f"{path}/{entity_id.value}", method="PUT", json=changes)
        except Exception as exc:
            error = normalize_error(exc)
            if self._accepts(key, generation):
                self._restore(manager, snapshot)
                logger.warning("Update of %s %s failed, collection rolled back: %s", kind, entity_id, error)
            else:
                logger.warning("Update of %s %s failed after a newer dispatch, rollback skipped", kind, entity_id)
            await self._after_failure(error)
            if error is exc:
                raise
            raise error from exc
        finally:
            self._release_snapshot()

        self.cache.invalidate(POSTS_LISTING_KEY)
        updated = parse(await decode_json(response))
        if self._accepts(key, generation):
            manager.replace(entity_id, updated)
            self._changed()
            logger.info("Updated %s %s", kind, entity_id)
        else:
            logger.warning("Conflict on %s %s: discarding response of generation %d (current %d)",
                           kind, entity_id, generation, self.generations.current(key))
        return updated

    async def _delete(self, kind: str, manager: EntityManager, path: str,
                      entity_id: Union[EntityId, str]) -> bool:
        entity_id = self._addressable(manager, entity_id)
        key = (kind, entity_id)
        snapshot = self._take_snapshot(manager)
        manager.remove(entity_id)
        generation = self.generations.dispatch(key)
        self._changed()

        try:
            await self.transport.authenticated_request(f"{path}/{entity_id.value}", method="DELETE")
        except Exception as exc:
            error = normalize_error(exc)
            if self._accepts(key, generation):
                self._restore(manager, snapshot)
                logger.warning("Delete of %s %s failed, collection rolled back: %s", kind, entity_id, error)
            else:
                logger.warning("Delete of %s %s failed after a newer dispatch, rollback skipped", kind, entity_id)
            await self._after_failure(error)
            if error is exc:
                raise
            raise error from exc
        finally:
            self._release_snapshot()

        self.cache.invalidate(POSTS_LISTING_KEY)
        logger.info("Deleted %s %s", kind, entity_id)
        return True

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _addressable(self, manager: EntityManager, entity_id: Union[EntityId, str]) -> DurableId:
        if isinstance(entity_id, str):
            held = manager.find_by_token(entity_id)
            if held is not None:
                entity_id = held.id
        entity_id = as_entity_id(entity_id)
        if isinstance(entity_id, LocalId):
            raise PendingConfirmationError(f"{entity_id} is still awaiting confirmation")
        return entity_id

    def _accepts(self, key: tuple, generation: int) -> bool:
        if self.policy is ConflictPolicy.LAST_RESPONSE:
            return True
        return self.generations.is_current(key, generation)

    def _take_snapshot(self, manager: EntityManager) -> List:
        self._snapshots_held += 1
        return manager.snapshot()

    def _release_snapshot(self) -> None:
        self._snapshots_held -= 1
        if not self._snapshots_held:
            self.promotions.clear()

    def _restore(self, manager: EntityManager, snapshot: Sequence) -> None:
        # a placeholder whose create resolved comes back as the confirmed
        # entity, or not at all if the create failed
        restored: List = []
        for item in snapshot:
            if item.is_optimistic and item.id not in self.pending_creates:
                if item.id in self.promotions:
                    restored.append(self.promotions[item.id])
                continue
            restored.append(item)
        manager.restore(restored)
        self._changed()

    async def _after_failure(self, error: ForumError) -> None:
        if isinstance(error, AuthFailure):
            await self.session.handle_auth_error()

    async def _discard_draft(self, draft_key: Optional[str]) -> None:
        if draft_key and self.drafts is not None:
            await self.drafts.discard(draft_key)

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change()
