"""Key-value stores with TTL and the pending-authorization state store.

Backends:
- MemoryKeyValueStore: in-process dict, for development and tests
- SupabaseKeyValueStore: `oauth_kv` table, shared across instances

Every backend offers take(), an atomic get-and-delete, so a state token or
authorization code can be redeemed at most once even under concurrent
requests.
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from pydantic import ValidationError

from oauth.crypto import random_token
from oauth.errors import StateFailure
from oauth.models import AuthRequest

logger = logging.getLogger(__name__)

STATE_PREFIX = "oauth_state:"
DEFAULT_STATE_TTL = 600  # 10 minutes


class KeyValueStore:
    """Interface for string key-value storage with optional expiry."""

    async def put(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        raise NotImplementedError

    async def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        raise NotImplementedError

    async def take(self, key: str) -> Optional[str]:
        """Return the value and remove it in one atomic step."""
        raise NotImplementedError


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store. Entries vanish on restart."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: dict[str, tuple[str, Optional[float]]] = {}
        self._lock = asyncio.Lock()

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def put(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        async with self._lock:
            self._data[key] = (value, expires_at)

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            return self._live(key)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)

    async def take(self, key: str) -> Optional[str]:
        async with self._lock:
            value = self._live(key)
            self._data.pop(key, None)
            return value


class SupabaseKeyValueStore(KeyValueStore):
    """Store backed by a Supabase table.

    Expected schema:

        create table oauth_kv (
            key text primary key,
            value text not null,
            expires_at timestamptz
        );

    take() is a single DELETE whose RETURNING rows tell us whether this
    request was the one that removed the entry.
    """

    def __init__(self, supabase_client, table: str = "oauth_kv"):
        self.supabase = supabase_client
        self.table = table

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def _expired(self, row: dict) -> bool:
        expires_at = row.get("expires_at")
        if not expires_at:
            return False
        return datetime.fromisoformat(expires_at.replace("Z", "+00:00")) <= self._now()

    async def put(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        row = {
            "key": key,
            "value": value,
            "expires_at": (self._now() + timedelta(seconds=ttl)).isoformat() if ttl else None,
        }
        await asyncio.to_thread(
            lambda: self.supabase.table(self.table).upsert(row).execute()
        )

    async def get(self, key: str) -> Optional[str]:
        response = await asyncio.to_thread(
            lambda: self.supabase.table(self.table).select("value, expires_at").eq("key", key).execute()
        )
        rows = response.data or []
        if not rows or self._expired(rows[0]):
            return None
        return rows[0]["value"]

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(
            lambda: self.supabase.table(self.table).delete().eq("key", key).execute()
        )

    async def take(self, key: str) -> Optional[str]:
        response = await asyncio.to_thread(
            lambda: self.supabase.table(self.table).delete().eq("key", key).execute()
        )
        rows = response.data or []
        if not rows or self._expired(rows[0]):
            return None
        return rows[0]["value"]


class StateStore:
    """Persists pending authorization requests under one-time state tokens."""

    def __init__(self, kv: KeyValueStore, prefix: str = STATE_PREFIX):
        self.kv = kv
        self.prefix = prefix

    async def save(self, pending: AuthRequest, ttl_seconds: int = DEFAULT_STATE_TTL) -> str:
        """Store the request and return the new state token."""
        state_token = random_token()
        await self.kv.put(self.prefix + state_token, pending.model_dump_json(), ttl=ttl_seconds)
        logger.info(f"[STATE] Saved pending authorization for client {pending.client_id} (ttl={ttl_seconds}s)")
        return state_token

    async def consume(self, state_token: str) -> AuthRequest:
        """Return the stored request and delete it. Works once per token."""
        stored = await self.kv.take(self.prefix + state_token)
        if stored is None:
            logger.info("[STATE] State token not found or expired")
            raise StateFailure("Invalid or expired state", status_code=400, kind="STATE_NOT_FOUND")

        try:
            return AuthRequest.model_validate_json(stored)
        except ValidationError:
            logger.warning("[STATE] Stored state could not be decoded")
            raise StateFailure("Invalid state data", status_code=400, kind="STATE_CORRUPT")
