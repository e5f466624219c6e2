#!/usr/bin/env python3
"""Reference forum store for local development and integration tests.

Implements the wire contract the sync engine talks to: public listings of
posts and replies, bearer-authenticated create/update/delete, and author
ownership on update and delete.
"""
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config import DB_PATH, SECRET_KEY
from database import DatabaseManager
from models import PostEdit, PostSubmission, ReplyEdit, ReplySubmission
from security import SecurityManager


class Exceptions:
    UNAUTHORIZED = HTTPException(status.HTTP_401_UNAUTHORIZED, "Authentication required")
    POST_NOT_FOUND = HTTPException(status.HTTP_404_NOT_FOUND, "Forum post not found")
    REPLY_NOT_FOUND = HTTPException(status.HTTP_404_NOT_FOUND, "Reply not found")
    NOT_AUTHOR = HTTPException(status.HTTP_403_FORBIDDEN, "Only the author may change this")


bearer = HTTPBearer(auto_error=False)


def get_db(request: Request) -> DatabaseManager:
    return request.app.state.db


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer)
) -> dict:
    """Validate JWT token and return its claims"""
    if credentials is None:
        raise Exceptions.UNAUTHORIZED
    security_manager: SecurityManager = request.app.state.security
    return security_manager.verify_token(credentials.credentials)


def require_author(entity: Optional[dict], current_user: dict, not_found: HTTPException) -> dict:
    if entity is None:
        raise not_found
    if entity["uid"] != current_user["uid"]:
        raise Exceptions.NOT_AUTHOR
    return entity


# =============================================================================
# FORUM POSTS
# =============================================================================

def create_post_router() -> APIRouter:
    router = APIRouter(prefix="/forum-posts", tags=["forum-posts"])

    @router.get("", response_model=List[dict])
    async def list_posts(db: DatabaseManager = Depends(get_db)):
        return await db.list_posts()

    @router.post("", status_code=status.HTTP_201_CREATED)
    async def create_post(post: PostSubmission, db: DatabaseManager = Depends(get_db),
                          current_user: dict = Depends(get_current_user)):
        return await db.create_post(
            current_user["uid"], current_user.get("email", ""),
            post.title, post.content, post.category, post.tags
        )

    @router.put("/{post_id}")
    async def update_post(post_id: str, changes: PostEdit, db: DatabaseManager = Depends(get_db),
                          current_user: dict = Depends(get_current_user)):
        require_author(await db.get_post(post_id), current_user, Exceptions.POST_NOT_FOUND)
        return await db.update_post(post_id, changes.model_dump(exclude_unset=True, exclude_none=True))

    @router.delete("/{post_id}")
    async def delete_post(post_id: str, db: DatabaseManager = Depends(get_db),
                          current_user: dict = Depends(get_current_user)):
        require_author(await db.get_post(post_id), current_user, Exceptions.POST_NOT_FOUND)
        await db.delete_post(post_id)
        return {"message": "Forum post deleted"}

    return router


# =============================================================================
# FORUM REPLIES
# =============================================================================

def create_reply_router() -> APIRouter:
    router = APIRouter(prefix="/forum-replies", tags=["forum-replies"])

    @router.get("", response_model=List[dict])
    async def list_replies(db: DatabaseManager = Depends(get_db)):
        return await db.list_replies()

    @router.post("", status_code=status.HTTP_201_CREATED)
    async def create_reply(reply: ReplySubmission, db: DatabaseManager = Depends(get_db),
                           current_user: dict = Depends(get_current_user)):
        if await db.get_post(reply.postId) is None:
            raise Exceptions.POST_NOT_FOUND
        return await db.create_reply(
            current_user["uid"], current_user.get("email", ""),
            reply.postId, reply.content, reply.parentReplyId
        )

    @router.put("/{reply_id}")
    async def update_reply(reply_id: str, changes: ReplyEdit, db: DatabaseManager = Depends(get_db),
                           current_user: dict = Depends(get_current_user)):
        require_author(await db.get_reply(reply_id), current_user, Exceptions.REPLY_NOT_FOUND)
        return await db.update_reply(reply_id, changes.content)

    @router.delete("/{reply_id}")
    async def delete_reply(reply_id: str, db: DatabaseManager = Depends(get_db),
                           current_user: dict = Depends(get_current_user)):
        require_author(await db.get_reply(reply_id), current_user, Exceptions.REPLY_NOT_FOUND)
        await db.delete_reply(reply_id)
        return {"message": "Reply deleted"}

    return router


def create_profile_router() -> APIRouter:
    router = APIRouter(tags=["profile"])

    @router.get("/me")
    async def me(current_user: dict = Depends(get_current_user)):
        return {
            "uid": current_user["uid"],
            "email": current_user.get("email", ""),
            "name": current_user.get("name"),
        }

    return router


def create_app(db_path: str = DB_PATH, secret_key: str = SECRET_KEY) -> FastAPI:
    database = DatabaseManager(db_path)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await database.initialize()
        yield

    app = FastAPI(title="Forum Store", description="Reference store for the forum sync engine",
                  version="1.0.0", lifespan=lifespan)
    app.state.db = database
    app.state.security = SecurityManager(secret_key=secret_key)

    for router in (create_post_router(), create_reply_router(), create_profile_router()):
        app.include_router(router)

    return app
