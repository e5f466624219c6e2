from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import HTTPException, status

from config import ACCESS_TOKEN_EXPIRE_MINUTES


class SecurityManager:
    """Issues and checks the bearer tokens of the reference store."""

    def __init__(self, secret_key: str, expire_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES):
        self.secret_key = secret_key
        self.algorithm = "HS256"
        self.access_token_expire_minutes = expire_minutes

    def create_access_token(self, uid: str, email: str = "", name: Optional[str] = None,
                            expires_in: Optional[timedelta] = None) -> str:
        """Create JWT access token"""
        lifetime = expires_in or timedelta(minutes=self.access_token_expire_minutes)
        claims = {"sub": uid, "uid": uid, "email": email, "exp": datetime.now(timezone.utc) + lifetime}
        if name:
            claims["name"] = name
        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    def verify_token(self, token: str) -> dict:
        """Decode a bearer token, 401 unless it is signed, unexpired and names a user"""
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise self._unauthorized("Token has expired")
        except jwt.InvalidTokenError:
            raise self._unauthorized("Invalid token")
        if not payload.get("uid"):
            raise self._unauthorized("Token does not name a user")
        return payload

    @staticmethod
    def _unauthorized(detail: str) -> HTTPException:
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)
