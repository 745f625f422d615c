"""Identity provider: user accounts, password login and JWT bearer tokens."""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Tuple

import jwt
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from werkzeug.security import check_password_hash, generate_password_hash

from anonlink.database import translate_db_errors
from anonlink.errors import DuplicateKeyError, InvalidCredentialsError, InvalidTokenError
from anonlink.models.base import utc_now
from anonlink.models.user import User

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


@dataclass(frozen=True)
class Principal:
    """An authenticated user. ``user_id`` is the owner_id of their files."""
    user_id: str
    username: str


class IdentityProvider:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        jwt_secret: str,
        token_ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session_factory = session_factory
        self.jwt_secret = jwt_secret
        self.token_ttl = token_ttl
        self.clock = clock

    async def register(self, username: str, email: str, password: str) -> Principal:
        # Hashing is CPU-bound
        password_hash = await asyncio.to_thread(generate_password_hash, password)
        user = User(
            id=str(uuid.uuid4()),
            username=username,
            email=email,
            password_hash=password_hash,
            created_at=self.clock(),
        )
        with translate_db_errors("register user"):
            async with self.session_factory() as db:
                existing = await db.execute(
                    select(User.id).where(or_(User.username == username, User.email == email))
                )
                if existing.first() is not None:
                    raise DuplicateKeyError("Username or email already registered")
                db.add(user)
                try:
                    await db.commit()
                except IntegrityError as e:
                    await db.rollback()
                    raise DuplicateKeyError("Username or email already registered") from e
        logger.info(f"Registered user {user.id} ({username})")
        return Principal(user_id=user.id, username=user.username)

    async def authenticate(self, username: str, password: str) -> Tuple[Principal, str]:
        """Check a password. Unknown users and wrong passwords fail identically."""
        with translate_db_errors("load user"):
            async with self.session_factory() as db:
                result = await db.execute(select(User).where(User.username == username))
                user = result.scalar_one_or_none()
        if user is None or not await asyncio.to_thread(check_password_hash, user.password_hash, password):
            raise InvalidCredentialsError("Invalid credentials")
        principal = Principal(user_id=user.id, username=user.username)
        return principal, self.issue_token(principal)

    def issue_token(self, principal: Principal) -> str:
        now = self.clock()
        payload = {
            "sub": principal.user_id,
            "username": principal.username,
            "iat": now,
            "exp": now + self.token_ttl,
        }
        return jwt.encode(payload, self.jwt_secret, algorithm=JWT_ALGORITHM)

    def verify(self, token: str) -> Principal:
        try:
            payload = jwt.decode(
                token,
                self.jwt_secret,
                algorithms=[JWT_ALGORITHM],
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.PyJWTError as e:
            raise InvalidTokenError("Invalid token") from e
        return Principal(user_id=payload["sub"], username=payload.get("username", ""))
