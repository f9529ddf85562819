"""
PlaceShare Backend: Password Hashing and Access Tokens
=======================================================

What:  bcrypt password hashing and HS256 JSON Web Tokens.
How:   PasswordHasher wraps the `bcrypt` package; TokenIssuer wraps
       python-jose. `get_current_user_id` is the FastAPI dependency that
       turns an `Authorization: Bearer <token>` header into a user id.

Token claims:
    {"userId": "<uuid>", "email": "<email>", "exp": <unix time>}
    Lifetime: settings.jwt_expiry_minutes (default 60)
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from placeshare.config import settings
from placeshare.exceptions import UnauthorizedError

logger = logging.getLogger(__name__)


class PasswordHasher:
    """
    bcrypt hashing. Digests embed their own salt and work factor.

    Both methods block for the full work factor; async callers run them
    with asyncio.to_thread.
    """

    def __init__(self, rounds: Optional[int] = None):
        self.rounds = rounds or settings.bcrypt_rounds

    def hash(self, plaintext: str) -> str:
        digest = bcrypt.hashpw(plaintext.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds))
        return digest.decode("utf-8")

    def verify(self, plaintext: str, digest: str) -> bool:
        """
        Compare a plaintext password with a stored digest.

        A malformed digest counts as a mismatch rather than an error, so a
        corrupted row can never authenticate.
        """
        try:
            return bcrypt.checkpw(plaintext.encode("utf-8"), digest.encode("utf-8"))
        except ValueError:
            logger.warning("Stored password digest is not a valid bcrypt hash")
            return False


class TokenIssuer:
    """Issues and verifies signed access tokens."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
        expiry_minutes: Optional[int] = None,
    ):
        self.secret_key = secret_key if secret_key is not None else settings.jwt_private_key
        self.algorithm = algorithm or settings.jwt_algorithm
        self.expiry = timedelta(minutes=expiry_minutes or settings.jwt_expiry_minutes)

    def issue(self, claims: Dict[str, Any]) -> str:
        to_encode = dict(claims)
        to_encode["exp"] = datetime.now(timezone.utc) + self.expiry
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def issue_for(self, user_id: uuid.UUID, email: str) -> str:
        return self.issue({"userId": str(user_id), "email": email})

    def verify(self, token: str) -> Dict[str, Any]:
        """
        Decode a token and check its signature and expiry.

        Raises:
            UnauthorizedError: bad signature, expired, or malformed token
        """
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError as e:
            raise UnauthorizedError(
                message="Authentication failed",
                context={"reason": str(e)},
            )


password_hasher = PasswordHasher()
token_issuer = TokenIssuer()

# auto_error=False: a missing header becomes our UnauthorizedError (401)
# instead of FastAPI's default 403
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> uuid.UUID:
    """FastAPI dependency: the authenticated caller's user id."""
    if credentials is None:
        raise UnauthorizedError(message="Authentication failed")

    claims = token_issuer.verify(credentials.credentials)
    try:
        return uuid.UUID(str(claims.get("userId")))
    except ValueError:
        raise UnauthorizedError(
            message="Authentication failed",
            context={"reason": "token carries no valid userId"},
        )
