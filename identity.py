import json
import logging
from dataclasses import asdict, dataclass
from typing import Awaitable, Callable, Optional

import jwt

from config import AUTH_TOKEN_KEY, LOGIN_PATH, PLACEHOLDER_EMAIL, PLACEHOLDER_UID, SESSION_KEYS, USER_KEY
from storage import LocalStorage

logger = logging.getLogger(__name__)

TokenRefresher = Callable[[], Awaitable[Optional[str]]]
RedirectHook = Callable[[str], None]


@dataclass(slots=True)
class CurrentUser:
    uid: str
    email: str = ""
    name: Optional[str] = None

    @property
    def handle(self) -> str:
        return self.email or self.name or self.uid


@dataclass(frozen=True, slots=True)
class Author:
    author_id: str
    author_handle: str


def author_for(user: Optional[CurrentUser]) -> Author:
    """Best-effort author fields, placeholders while the identity is unresolved."""
    if user is None:
        return Author(PLACEHOLDER_UID, PLACEHOLDER_EMAIL)
    return Author(user.uid or PLACEHOLDER_UID, user.email or PLACEHOLDER_EMAIL)


class SessionManager:
    """Locally held session artifacts and the credential they provide.

    The stored bearer token is the best available credential. An optional
    refresher obtains a new one from the identity provider.
    """

    def __init__(self, storage: LocalStorage, refresher: Optional[TokenRefresher] = None,
                 on_redirect: Optional[RedirectHook] = None, login_path: str = LOGIN_PATH):
        self.storage = storage
        self.refresher = refresher
        self.on_redirect = on_redirect
        self.login_path = login_path

    async def get_token(self, force_refresh: bool = False) -> Optional[str]:
        if not force_refresh:
            return await self.storage.get_item(AUTH_TOKEN_KEY)
        if self.refresher is None:
            return None
        token = await self.refresher()
        if token:
            await self.storage.set_item(AUTH_TOKEN_KEY, token)
        return token

    async def set_token(self, token: str):
        await self.storage.set_item(AUTH_TOKEN_KEY, token)

    async def remember_user(self, user: CurrentUser):
        await self.storage.set_item(USER_KEY, json.dumps(asdict(user)))

    async def known_user(self) -> Optional[CurrentUser]:
        raw = await self.storage.get_item(USER_KEY)
        if not raw:
            return None
        try:
            return CurrentUser(**json.loads(raw))
        except (TypeError, ValueError):
            logger.warning("Discarding unreadable stored user")
            await self.storage.remove_item(USER_KEY)
            return None

    async def identity_from_token(self) -> Optional[CurrentUser]:
        """Identity claimed by the stored token, without verifying its signature."""
        token = await self.storage.get_item(AUTH_TOKEN_KEY)
        if not token:
            return None
        try:
            claims = jwt.decode(token, options={"verify_signature": False, "verify_exp": False})
        except jwt.InvalidTokenError:
            return None
        uid = claims.get("uid") or claims.get("sub")
        if not uid:
            return None
        return CurrentUser(uid=str(uid), email=claims.get("email", ""), name=claims.get("name"))

    async def clear(self):
        for key in SESSION_KEYS:
            await self.storage.remove_item(key)

    async def handle_auth_error(self):
        """Clear session artifacts and send the user to the login entry point."""
        logger.warning("Handling auth error - clearing session and redirecting to %s", self.login_path)
        await self.clear()
        if self.on_redirect is not None:
            self.on_redirect(self.login_path)
