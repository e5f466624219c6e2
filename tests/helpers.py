"""Fakes shared by the forum sync engine tests."""

import asyncio
import json
from typing import Any, Dict, List, Optional

import httpx

from cache import TTLCache
from coordinator import ConflictPolicy
from forum import ForumSync
from identity import SessionManager
from storage import DraftStore
from transport import Transport

TEST_SECRET = "test-secret"
BASE_URL = "http://forum.test"


class FakeClock:
    """Manually advanced clock for cache freshness."""

    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class Gate:
    """Holds one request until the test releases it."""

    def __init__(self) -> None:
        self.arrived = asyncio.Event()
        self.released = asyncio.Event()
        self.response: Optional[httpx.Response] = None

    def release(self, status: Optional[int] = None, json_body: Any = None) -> None:
        """Let the request through, optionally answering it with `status` instead of the store."""
        if status is not None:
            self.response = httpx.Response(status, json=json_body)
        self.released.set()


def wire_post(post_id: str, title: str = "Market basics", content: str = "What is an index fund?",
              category: str = "General", tags: Optional[List[str]] = None, uid: str = "alice",
              created: str = "2024-01-01T00:00:00Z") -> Dict[str, Any]:
    return {
        "_id": post_id,
        "title": title,
        "content": content,
        "category": category,
        "tags": tags or [],
        "uid": uid,
        "userEmail": f"{uid}@example.com",
        "createdAt": created,
    }


def wire_reply(reply_id: str, post_id: str, content: str = "Good question",
               uid: str = "bob", created: str = "2024-01-02T00:00:00Z") -> Dict[str, Any]:
    return {
        "_id": reply_id,
        "postId": post_id,
        "content": content,
        "uid": uid,
        "userEmail": f"{uid}@example.com",
        "createdAt": created,
    }


class FakeStore:
    """In-memory stand-in for the remote store behind httpx.MockTransport."""

    def __init__(self, uid: str = "alice"):
        self.uid = uid
        self.posts: List[Dict[str, Any]] = []
        self.replies: List[Dict[str, Any]] = []
        self.requests: List[tuple] = []
        self.auth_headers: List[Optional[str]] = []
        self.network_down = False
        self.observer = None
        self._gates: Dict[tuple, List[Gate]] = {}
        self._overrides: Dict[tuple, httpx.Response] = {}
        self._counter = 0

    def hold(self, method: str, path: str) -> Gate:
        gate = Gate()
        self._gates.setdefault((method, path), []).append(gate)
        return gate

    def respond(self, method: str, path: str, status: int, json_body: Any = None, text: Optional[str] = None):
        if text is not None:
            self._overrides[(method, path)] = httpx.Response(status, text=text)
        else:
            self._overrides[(method, path)] = httpx.Response(status, json=json_body)

    def count(self, method: str, path: str) -> int:
        return self.requests.count((method, path))

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        self.requests.append((method, path))
        self.auth_headers.append(request.headers.get("authorization"))
        if self.observer is not None:
            self.observer(request)

        gates = self._gates.get((method, path))
        if gates:
            gate = gates.pop(0)
            gate.arrived.set()
            await gate.released.wait()
            if gate.response is not None:
                return gate.response

        if self.network_down:
            raise httpx.ConnectError("Connection refused", request=request)

        override = self._overrides.get((method, path))
        if override is not None:
            return override

        body = json.loads(request.content) if request.content else None
        return self._route(method, path, body)

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}{self._counter}"

    def _route(self, method: str, path: str, body: Any) -> httpx.Response:
        parts = path.strip("/").split("/")
        if parts == ["me"]:
            return httpx.Response(200, json={"uid": self.uid, "email": f"{self.uid}@example.com"})

        if parts[0] == "forum-posts":
            collection, prefix = self.posts, "srv-post-"
        elif parts[0] == "forum-replies":
            collection, prefix = self.replies, "srv-reply-"
        else:
            return httpx.Response(404, json={"message": "Not found"})

        if len(parts) == 1:
            if method == "GET":
                return httpx.Response(200, json=list(collection))
            if parts[0] == "forum-replies" and not any(p["_id"] == body.get("postId") for p in self.posts):
                return httpx.Response(404, json={"message": "Forum post not found"})
            record = {**body, "_id": self._next_id(prefix), "uid": self.uid,
                      "userEmail": f"{self.uid}@example.com", "createdAt": "2024-06-01T12:00:00Z"}
            collection.insert(0, record) if parts[0] == "forum-posts" else collection.append(record)
            return httpx.Response(201, json=record)

        entity_id = parts[1]
        index = next((i for i, item in enumerate(collection) if item["_id"] == entity_id), None)
        if index is None:
            return httpx.Response(404, json={"message": "Not found"})
        if method == "PUT":
            collection[index] = {**collection[index], **body, "updatedAt": "2024-06-02T12:00:00Z"}
            return httpx.Response(200, json=collection[index])
        if method == "DELETE":
            collection.pop(index)
            return httpx.Response(200, json={"message": "Deleted"})
        return httpx.Response(405)


def make_engine(store: FakeStore, session: SessionManager, clock: FakeClock,
                policy: ConflictPolicy = ConflictPolicy.LATEST_DISPATCH, **kwargs) -> ForumSync:
    client = httpx.AsyncClient(transport=httpx.MockTransport(store))
    transport = Transport(session, base_url=BASE_URL, client=client)
    return ForumSync(transport, session, drafts=DraftStore(session.storage),
                     cache=TTLCache(clock=clock), policy=policy, **kwargs)


def make_store_engine(app, session: SessionManager) -> ForumSync:
    client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app))
    transport = Transport(session, base_url="http://testserver", client=client)
    return ForumSync(transport, session, drafts=DraftStore(session.storage))
