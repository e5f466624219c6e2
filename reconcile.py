"""Turning store responses into local entities and deriving per-post reply counts.

Posts and replies arrive from two independent listings. A post's reply count
is never stored: it is read from the reply index under the post's current
identifier. While a post is optimistic that identifier is its temporary id,
so replies created against it are counted; once it is promoted to a durable
id, replies still pointing at the temporary id stop counting until the
replies listing is fetched again.
"""
import json
from dataclasses import dataclass
from typing import Any, Iterable, List, Union

import httpx
from pydantic import ValidationError

from exceptions import ReconciliationError
from identifiers import DurableId, EntityId, LocalId
from models import PostRecord, ReplyRecord
from posts import Post, PostManager
from replies import Reply, ReplyIndex


async def decode_json(response: httpx.Response) -> Any:
    await response.aread()
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ReconciliationError(f"Malformed response body: {exc}", response.status_code) from exc


def parse_post(payload: Any) -> Post:
    try:
        return Post.from_record(PostRecord.model_validate(payload))
    except ValidationError as exc:
        raise ReconciliationError(f"Malformed post: {exc.error_count()} invalid field(s)") from exc


def parse_reply(payload: Any) -> Reply:
    try:
        return Reply.from_record(ReplyRecord.model_validate(payload))
    except ValidationError as exc:
        raise ReconciliationError(f"Malformed reply: {exc.error_count()} invalid field(s)") from exc


def parse_posts(payload: Any) -> List[Post]:
    if not isinstance(payload, list):
        raise ReconciliationError("Expected a list of posts")
    return [parse_post(item) for item in payload]


def parse_replies(payload: Any) -> List[Reply]:
    if not isinstance(payload, list):
        raise ReconciliationError("Expected a list of replies")
    return [parse_reply(item) for item in payload]


def resolve_post_ref(ref: Union[EntityId, str], posts: PostManager) -> EntityId:
    """Tag a caller-supplied post reference.

    A string naming a held optimistic post resolves to that post's temporary
    id; any other string is a durable id.
    """
    if isinstance(ref, (LocalId, DurableId)):
        return ref
    post = posts.find_by_token(ref)
    if post is not None and isinstance(post.id, LocalId):
        return post.id
    return DurableId(ref)


def reply_count(post: Post, index: ReplyIndex) -> int:
    """Replies held under the post's durable id, or under its temporary id while optimistic."""
    return index.count(post.id)


@dataclass(slots=True)
class PostView:
    post: Post
    reply_count: int


def with_reply_counts(posts: Iterable[Post], index: ReplyIndex) -> List[PostView]:
    return [PostView(post, reply_count(post, index)) for post in posts]


def replies_for(post_id: EntityId, replies: Iterable[Reply]) -> List[Reply]:
    return [reply for reply in replies if reply.post_id == post_id]
