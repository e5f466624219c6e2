import asyncio

import httpx
import pytest

from exceptions import ReconciliationError, ServerFailure
from helpers import wire_post, wire_reply
from identifiers import DurableId, LocalId
from posts import Post, PostManager
from reconcile import decode_json, parse_post, parse_posts, parse_reply, resolve_post_ref, with_reply_counts
from replies import Reply, ReplyManager


def make_post(post_id, **kwargs):
    defaults = dict(author_id="alice", author_handle="alice@example.com", title="Market basics",
                    content="What is an index fund?", category="General", created_at=1.0)
    defaults.update(kwargs)
    return Post(id=post_id, **defaults)


def make_reply(reply_id, post_id, **kwargs):
    return Reply(id=reply_id, post_id=post_id, author_id="bob", author_handle="bob@example.com",
                 content="Good question", **kwargs)


def test_parse_post_reads_wire_shape():
    post = parse_post({**wire_post("p1", tags="etf, fees ,"), "updatedAt": "2024-01-05T00:00:00Z",
                       "extra": "ignored"})

    assert post.id == DurableId("p1")
    assert post.author_id == "alice"
    assert post.author_handle == "alice@example.com"
    assert post.tags == ("etf", "fees")
    assert post.created_at == 1704067200.0
    assert post.updated_at > post.created_at
    assert not post.is_optimistic


def test_parse_accepts_object_id_and_numeric_timestamps():
    reply = parse_reply({"_id": {"$oid": "abc123"}, "postId": 7, "content": "Nice",
                         "createdAt": 1704067200})

    assert reply.id == DurableId("abc123")
    assert reply.post_id == DurableId("7")
    assert reply.created_at == 1704067200.0


def test_malformed_payloads_raise_reconciliation_error():
    with pytest.raises(ReconciliationError):
        parse_post({"title": "no id or timestamp"})
    with pytest.raises(ReconciliationError):
        parse_posts({"posts": []})


@pytest.mark.asyncio
async def test_decode_json_rejects_non_json_body():
    response = httpx.Response(200, text="<html>oops</html>")

    with pytest.raises(ReconciliationError) as excinfo:
        await decode_json(response)

    assert excinfo.value.status_code == 200


def test_resolve_post_ref_prefers_held_placeholder():
    temp = LocalId("temp-1-0")
    posts = PostManager([make_post(temp, is_optimistic=True), make_post(DurableId("p1"))])

    assert resolve_post_ref("temp-1-0", posts) == temp
    assert resolve_post_ref("p1", posts) == DurableId("p1")
    assert resolve_post_ref("unknown", posts) == DurableId("unknown")
    assert resolve_post_ref(temp, posts) is temp


def test_reply_index_tracks_every_collection_change():
    p1, p2 = DurableId("p1"), DurableId("p2")
    replies = ReplyManager([make_reply(DurableId("r1"), p1)])
    index = replies.index

    replies.append(make_reply(DurableId("r2"), p1))
    replies.append(make_reply(DurableId("r3"), p2))
    assert (index.count(p1), index.count(p2)) == (2, 1)

    replies.replace(DurableId("r3"), make_reply(DurableId("r3"), p1))
    assert (index.count(p1), index.count(p2)) == (3, 0)

    replies.remove(DurableId("r1"))
    assert index.reply_ids(p1) == frozenset({DurableId("r2"), DurableId("r3")})

    replies.replace_all([make_reply(DurableId("r9"), p2)])
    assert (index.count(p1), index.count(p2)) == (0, 1)


def test_counts_follow_the_current_identifier():
    temp = LocalId("temp-1-0")
    durable = DurableId("p1")
    replies = ReplyManager([make_reply(DurableId("r1"), temp), make_reply(DurableId("r2"), durable)])

    optimistic = make_post(temp, is_optimistic=True)
    confirmed = make_post(durable)
    views = with_reply_counts([optimistic, confirmed], replies.index)

    assert [v.reply_count for v in views] == [1, 1]


@pytest.mark.asyncio
async def test_reply_to_promoted_post_stops_counting_until_refetch(engine, store):
    post_gate = store.hold("POST", "/forum-posts")
    create_post = asyncio.create_task(
        engine.create_post({"title": "Fresh thoughts", "content": "Something new to say"}))
    await post_gate.arrived.wait()
    placeholder = engine.posts[0]

    reply_gate = store.hold("POST", "/forum-replies")
    create_reply = asyncio.create_task(
        engine.create_reply({"post_id": str(placeholder.id), "content": "First!"}))
    await reply_gate.arrived.wait()
    assert engine.replies[0].post_id == placeholder.id
    assert engine.reply_count(placeholder) == 1

    post_gate.release()
    created = await create_post
    assert engine.reply_count(created) == 0

    # the store has never heard of the temporary id
    reply_gate.release()
    with pytest.raises(ServerFailure):
        await create_reply
    assert engine.replies == []

    await engine.create_reply({"post_id": str(created.id), "content": "Second try"})
    await engine.fetch_replies()
    assert engine.reply_count(engine.posts[0]) == 1
    assert store.replies[0]["postId"] == str(created.id)


@pytest.mark.asyncio
async def test_fetched_replies_count_against_posts(engine, store):
    store.posts = [wire_post("p1"), wire_post("p2")]
    store.replies = [wire_reply("r1", "p1"), wire_reply("r2", "p1"), wire_reply("r3", "gone")]

    await engine.fetch_posts()
    await engine.fetch_replies()

    counts = {str(v.post.id): v.reply_count for v in engine.view()}
    assert counts == {"p1": 2, "p2": 0}
