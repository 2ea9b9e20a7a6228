"""Short-lived, single-use challenge storage for WebAuthn ceremonies.

Challenges live in a shared store (the database or Redis), never in a
process-local map, so a ceremony may begin and complete on different
server instances.
"""

from __future__ import annotations

import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from redis import Redis
from sqlalchemy import delete, select
from sqlalchemy.orm import Session
from webauthn.helpers import base64url_to_bytes, bytes_to_base64url

from authcore.core.config import settings
from authcore.core.logging import get_logger
from authcore.core.time import Clock, ensure_aware, utcnow
from authcore.db import WebAuthnChallenge
from authcore.db.utils import upsert_row
from authcore.domain.exceptions import ChallengeNotFound

logger = get_logger(__name__)

CHALLENGE_BYTES = 32


@dataclass(frozen=True)
class Challenge:
    key: str
    value: str  # base64url, as sent to the client
    issued_at: datetime
    expires_at: datetime

    @property
    def raw(self) -> bytes:
        return base64url_to_bytes(self.value)


class ChallengeStore(ABC):
    """Issues and single-consumes challenges keyed by a ceremony key.

    Issuing for a key that already holds a challenge replaces it: a second
    ceremony attempt supersedes the first, whose ``consume`` then fails.
    """

    def __init__(self, ttl_seconds: Optional[int] = None, clock: Clock = utcnow) -> None:
        self.ttl_seconds = ttl_seconds or settings.webauthn_challenge_ttl_seconds
        self.clock = clock

    def _mint(self, key: str) -> Challenge:
        now = self.clock()
        return Challenge(
            key=key,
            value=bytes_to_base64url(secrets.token_bytes(CHALLENGE_BYTES)),
            issued_at=now,
            expires_at=now + timedelta(seconds=self.ttl_seconds),
        )

    @abstractmethod
    def issue(self, key: str) -> Challenge:
        """Mint a challenge for ``key``, replacing any outstanding one."""

    @abstractmethod
    def consume(self, key: str) -> bytes:
        """Return and delete the live challenge for ``key``.

        Raises:
            ChallengeNotFound: never issued, expired, or already consumed.
        """


class DatabaseChallengeStore(ChallengeStore):
    """Challenge store backed by the ``webauthn_challenges`` table."""

    def __init__(
        self,
        session: Session,
        ttl_seconds: Optional[int] = None,
        clock: Clock = utcnow,
    ) -> None:
        super().__init__(ttl_seconds=ttl_seconds, clock=clock)
        self.session = session

    def issue(self, key: str) -> Challenge:
        challenge = self._mint(key)
        upsert_row(
            self.session,
            WebAuthnChallenge,
            {
                "key": key,
                "value": challenge.value,
                "issued_at": challenge.issued_at,
                "expires_at": challenge.expires_at,
            },
            key_columns=["key"],
        )
        self.session.commit()
        return challenge

    def consume(self, key: str) -> bytes:
        row = self.session.execute(
            select(WebAuthnChallenge.value, WebAuthnChallenge.expires_at).where(
                WebAuthnChallenge.key == key
            )
        ).first()
        if row is None:
            raise ChallengeNotFound()

        value, expires_at = row
        # Compare-and-delete: only the caller that removes this exact value wins
        result = self.session.execute(
            delete(WebAuthnChallenge).where(
                WebAuthnChallenge.key == key,
                WebAuthnChallenge.value == value,
            )
        )
        self.session.commit()

        if result.rowcount == 0 or ensure_aware(expires_at) <= self.clock():
            raise ChallengeNotFound()
        return base64url_to_bytes(value)

    def purge_expired(self) -> int:
        """Hard-delete expired challenges (storage hygiene only)."""
        result = self.session.execute(
            delete(WebAuthnChallenge).where(WebAuthnChallenge.expires_at <= self.clock())
        )
        self.session.commit()
        return result.rowcount


class RedisChallengeStore(ChallengeStore):
    """Challenge store backed by Redis keys with a native TTL."""

    KEY_PREFIX = "authcore:webauthn:challenge:"

    def __init__(
        self,
        client: Redis,
        ttl_seconds: Optional[int] = None,
        clock: Clock = utcnow,
    ) -> None:
        super().__init__(ttl_seconds=ttl_seconds, clock=clock)
        self.client = client

    def _name(self, key: str) -> str:
        return f"{self.KEY_PREFIX}{key}"

    def issue(self, key: str) -> Challenge:
        challenge = self._mint(key)
        self.client.set(self._name(key), challenge.value, ex=self.ttl_seconds)
        return challenge

    def consume(self, key: str) -> bytes:
        # GETDEL is atomic: a racing consumer sees nothing
        value = self.client.getdel(self._name(key))
        if value is None:
            raise ChallengeNotFound()
        if isinstance(value, bytes):
            value = value.decode("ascii")
        return base64url_to_bytes(value)


_redis_client: Redis | None = None


def _get_redis_client() -> Redis:
    global _redis_client
    if _redis_client is None:
        _redis_client = Redis.from_url(settings.redis_url)
    return _redis_client


def get_challenge_store(session: Session) -> ChallengeStore:
    """Build the configured challenge store."""
    if settings.webauthn_challenge_backend == "redis":
        return RedisChallengeStore(_get_redis_client())
    return DatabaseChallengeStore(session)
