"""
Activity Store - durable wallet activity records.

One record per wallet: last activity timestamp plus ACTIVE/SETTLED status.
Redis is the primary engine; the in-memory adapter implements the same
contract for the test suite.

Writes to a single wallet are atomic. A late activity upsert can never
move a SETTLED wallet back to ACTIVE.
"""

import abc
import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from inheritor.config.settings import settings
from inheritor.services.errors import AlreadySettled, NotFound, StoreUnavailable
from inheritor.services.models import ActivityRecord, WalletStatus

logger = logging.getLogger("inheritor.store")


class ActivityStore(abc.ABC):
    """Capability interface consumed by the scanner, executor and API."""

    @abc.abstractmethod
    async def list_active(self) -> List[ActivityRecord]:
        """All ACTIVE records. Raises StoreUnavailable."""

    @abc.abstractmethod
    async def get(self, wallet_id: str) -> Optional[ActivityRecord]:
        ...

    @abc.abstractmethod
    async def upsert(self, wallet_id: str, timestamp: int) -> ActivityRecord:
        """
        Create the record or move its last activity forward.

        Raises AlreadySettled if the wallet is SETTLED. An older timestamp
        than the stored one leaves the record unchanged.
        """

    @abc.abstractmethod
    async def mark_settled(self, wallet_id: str, tx_hash: str, settled_at: int) -> ActivityRecord:
        """Terminal transition. Raises NotFound or AlreadySettled."""

    # --- Registration data (limits, nominees) ---

    @abc.abstractmethod
    async def set_limits(self, wallet_id: str, lower_limit: float, upper_limit: float) -> None:
        ...

    @abc.abstractmethod
    async def get_limits(self, wallet_id: str) -> Optional[Dict[str, float]]:
        ...

    @abc.abstractmethod
    async def set_nominees(self, wallet_id: str, nominees: List[Dict[str, Any]]) -> None:
        ...

    @abc.abstractmethod
    async def get_nominees(self, wallet_id: str) -> List[Dict[str, Any]]:
        ...

    # --- Cycle history ---

    @abc.abstractmethod
    async def record_cycle(self, summary: Dict[str, Any]) -> None:
        ...

    @abc.abstractmethod
    async def recent_cycles(self, limit: int = 20) -> List[Dict[str, Any]]:
        ...

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


# ------------------------------------------------------------------ #
#  Redis adapter                                                       #
# ------------------------------------------------------------------ #

# KEYS[1] wallet hash, KEYS[2] active set; ARGV[1] timestamp, ARGV[2] wallet id
# Returns the stored last_activity_at, or -1 when the wallet is settled.
_UPSERT_LUA = """
local status = redis.call('HGET', KEYS[1], 'status')
if status == 'SETTLED' then
    return -1
end
local last = redis.call('HGET', KEYS[1], 'last_activity_at')
local ts = tonumber(ARGV[1])
if (not last) or ts > tonumber(last) then
    redis.call('HSET', KEYS[1], 'wallet_id', ARGV[2], 'last_activity_at', ARGV[1], 'status', 'ACTIVE')
    last = ARGV[1]
end
redis.call('SADD', KEYS[2], ARGV[2])
return tonumber(last)
"""

# KEYS[1] wallet hash, KEYS[2] active set; ARGV[1] settled_at, ARGV[2] tx hash, ARGV[3] wallet id
# Returns the record's last_activity_at on transition, -1 if unknown, -2 if already settled.
_SETTLE_LUA = """
local status = redis.call('HGET', KEYS[1], 'status')
if not status then
    return -1
end
if status == 'SETTLED' then
    return -2
end
redis.call('HSET', KEYS[1], 'status', 'SETTLED', 'settled_at', ARGV[1], 'tx_hash', ARGV[2])
redis.call('SREM', KEYS[2], ARGV[3])
return tonumber(redis.call('HGET', KEYS[1], 'last_activity_at'))
"""

_SETTLE_UNKNOWN = -1
_SETTLE_ALREADY = -2


def _record_from_hash(data: Dict[str, str]) -> ActivityRecord:
    settled_at = data.get("settled_at")
    return ActivityRecord(
        wallet_id=data["wallet_id"],
        last_activity_at=int(data["last_activity_at"]),
        status=WalletStatus(data.get("status", WalletStatus.ACTIVE.value)),
        settled_at=int(settled_at) if settled_at else None,
        tx_hash=data.get("tx_hash") or None,
    )


class RedisActivityStore(ActivityStore):
    """Activity records as Redis hashes, indexed by a set of ACTIVE wallets."""

    def __init__(
        self,
        host: str = None,
        port: int = None,
        db: int = None,
        prefix: str = None,
        history_limit: int = None,
        client: Optional[aioredis.Redis] = None,
    ):
        self.host = host or settings.redis_host
        self.port = port or settings.redis_port
        self.db = settings.redis_db if db is None else db
        self.prefix = prefix or settings.key_prefix
        self.history_limit = history_limit or settings.cycle_history_limit
        self.redis: Optional[aioredis.Redis] = client
        self._upsert_script = None
        self._settle_script = None
        if client is not None:
            self._register_scripts()

    def _register_scripts(self) -> None:
        self._upsert_script = self.redis.register_script(_UPSERT_LUA)
        self._settle_script = self.redis.register_script(_SETTLE_LUA)

    # --- Keys ---

    def _wallet_key(self, wallet_id: str) -> str:
        return f"{self.prefix}:wallet:{wallet_id}"

    @property
    def _active_key(self) -> str:
        return f"{self.prefix}:wallets:active"

    @property
    def _cycles_key(self) -> str:
        return f"{self.prefix}:cycles"

    def _limits_key(self, wallet_id: str) -> str:
        return f"{self.prefix}:limits:{wallet_id}"

    def _nominees_key(self, wallet_id: str) -> str:
        return f"{self.prefix}:nominees:{wallet_id}"

    # --- Connection ---

    async def connect(self) -> bool:
        """
        Establish connection to Redis.

        The client and its scripts are installed even when the first ping
        fails; the connection pool reconnects on the next command, so the
        store recovers once Redis is reachable again.
        """
        self.redis = aioredis.from_url(
            f"redis://{self.host}:{self.port}/{self.db}",
            decode_responses=True,
        )
        self._register_scripts()
        try:
            await self.redis.ping()
            logger.info("Activity store connected to redis://%s:%s/%s", self.host, self.port, self.db)
            return True
        except RedisError as e:
            logger.error("Activity store connection failed: %s", e)
            return False

    async def close(self) -> None:
        if self.redis:
            await self.redis.close()

    async def ping(self) -> bool:
        try:
            if self.redis:
                await self.redis.ping()
                return True
        except RedisError:
            pass
        return False

    def _require_client(self) -> aioredis.Redis:
        if self.redis is None:
            raise StoreUnavailable("Activity store is not connected")
        if self._upsert_script is None:
            self._register_scripts()
        return self.redis

    # --- Activity records ---

    async def list_active(self) -> List[ActivityRecord]:
        client = self._require_client()
        try:
            wallet_ids = await client.smembers(self._active_key)
            if not wallet_ids:
                return []
            pipe = client.pipeline(transaction=False)
            ordered = sorted(wallet_ids)
            for wallet_id in ordered:
                pipe.hgetall(self._wallet_key(wallet_id))
            rows = await pipe.execute()
        except RedisError as e:
            raise StoreUnavailable(f"Could not list active wallets: {e}") from e

        records = []
        for wallet_id, data in zip(ordered, rows):
            if not data:
                logger.warning("Active index references missing record %s", wallet_id)
                continue
            record = _record_from_hash(data)
            if record.is_active:
                records.append(record)
        return records

    async def get(self, wallet_id: str) -> Optional[ActivityRecord]:
        client = self._require_client()
        try:
            data = await client.hgetall(self._wallet_key(wallet_id))
        except RedisError as e:
            raise StoreUnavailable(f"Could not read {wallet_id}: {e}") from e
        return _record_from_hash(data) if data else None

    async def upsert(self, wallet_id: str, timestamp: int) -> ActivityRecord:
        client = self._require_client()
        try:
            stored = await self._upsert_script(
                keys=[self._wallet_key(wallet_id), self._active_key],
                args=[int(timestamp), wallet_id],
                client=client,
            )
        except RedisError as e:
            raise StoreUnavailable(f"Could not record activity for {wallet_id}: {e}") from e

        if int(stored) < 0:
            raise AlreadySettled(wallet_id)
        return ActivityRecord(wallet_id=wallet_id, last_activity_at=int(stored))

    async def mark_settled(self, wallet_id: str, tx_hash: str, settled_at: int) -> ActivityRecord:
        client = self._require_client()
        try:
            result = await self._settle_script(
                keys=[self._wallet_key(wallet_id), self._active_key],
                args=[int(settled_at), tx_hash, wallet_id],
                client=client,
            )
        except RedisError as e:
            raise StoreUnavailable(f"Could not settle {wallet_id}: {e}") from e

        result = int(result)
        if result == _SETTLE_UNKNOWN:
            raise NotFound(wallet_id)
        if result == _SETTLE_ALREADY:
            raise AlreadySettled(wallet_id)
        # The transition has committed; no read-back.
        return ActivityRecord(
            wallet_id=wallet_id,
            last_activity_at=result,
            status=WalletStatus.SETTLED,
            settled_at=int(settled_at),
            tx_hash=tx_hash,
        )

    # --- Registration data ---

    async def set_limits(self, wallet_id: str, lower_limit: float, upper_limit: float) -> None:
        client = self._require_client()
        try:
            await client.hset(
                self._limits_key(wallet_id),
                mapping={"lower_limit": str(lower_limit), "upper_limit": str(upper_limit)},
            )
        except RedisError as e:
            raise StoreUnavailable(f"Could not store limits for {wallet_id}: {e}") from e

    async def get_limits(self, wallet_id: str) -> Optional[Dict[str, float]]:
        client = self._require_client()
        try:
            data = await client.hgetall(self._limits_key(wallet_id))
        except RedisError as e:
            raise StoreUnavailable(f"Could not read limits for {wallet_id}: {e}") from e
        if not data:
            return None
        return {k: float(v) for k, v in data.items()}

    async def set_nominees(self, wallet_id: str, nominees: List[Dict[str, Any]]) -> None:
        client = self._require_client()
        try:
            await client.set(self._nominees_key(wallet_id), json.dumps(nominees))
        except RedisError as e:
            raise StoreUnavailable(f"Could not store nominees for {wallet_id}: {e}") from e

    async def get_nominees(self, wallet_id: str) -> List[Dict[str, Any]]:
        client = self._require_client()
        try:
            data = await client.get(self._nominees_key(wallet_id))
        except RedisError as e:
            raise StoreUnavailable(f"Could not read nominees for {wallet_id}: {e}") from e
        return json.loads(data) if data else []

    # --- Cycle history ---

    async def record_cycle(self, summary: Dict[str, Any]) -> None:
        client = self._require_client()
        try:
            pipe = client.pipeline(transaction=True)
            pipe.lpush(self._cycles_key, json.dumps(summary, default=str))
            pipe.ltrim(self._cycles_key, 0, self.history_limit - 1)
            await pipe.execute()
        except RedisError as e:
            raise StoreUnavailable(f"Could not record cycle: {e}") from e

    async def recent_cycles(self, limit: int = 20) -> List[Dict[str, Any]]:
        client = self._require_client()
        try:
            data = await client.lrange(self._cycles_key, 0, limit - 1)
        except RedisError as e:
            raise StoreUnavailable(f"Could not read cycle history: {e}") from e
        return [json.loads(item) for item in data]


# ------------------------------------------------------------------ #
#  In-memory adapter                                                   #
# ------------------------------------------------------------------ #

class InMemoryActivityStore(ActivityStore):
    """Process-local store. All mutations are serialised by one lock."""

    def __init__(self, history_limit: int = None):
        self.history_limit = history_limit or settings.cycle_history_limit
        self._records: Dict[str, ActivityRecord] = {}
        self._limits: Dict[str, Dict[str, float]] = {}
        self._nominees: Dict[str, List[Dict[str, Any]]] = {}
        self._cycles: List[Dict[str, Any]] = []
        self._lock = asyncio.Lock()

    async def list_active(self) -> List[ActivityRecord]:
        async with self._lock:
            return [
                _copy(self._records[w])
                for w in sorted(self._records)
                if self._records[w].is_active
            ]

    async def get(self, wallet_id: str) -> Optional[ActivityRecord]:
        async with self._lock:
            record = self._records.get(wallet_id)
            return _copy(record) if record else None

    async def upsert(self, wallet_id: str, timestamp: int) -> ActivityRecord:
        async with self._lock:
            record = self._records.get(wallet_id)
            if record is None:
                record = ActivityRecord(wallet_id=wallet_id, last_activity_at=int(timestamp))
                self._records[wallet_id] = record
            elif not record.is_active:
                raise AlreadySettled(wallet_id)
            elif timestamp > record.last_activity_at:
                record.last_activity_at = int(timestamp)
            return _copy(record)

    async def mark_settled(self, wallet_id: str, tx_hash: str, settled_at: int) -> ActivityRecord:
        async with self._lock:
            record = self._records.get(wallet_id)
            if record is None:
                raise NotFound(wallet_id)
            if not record.is_active:
                raise AlreadySettled(wallet_id)
            record.status = WalletStatus.SETTLED
            record.settled_at = int(settled_at)
            record.tx_hash = tx_hash
            return _copy(record)

    async def set_limits(self, wallet_id: str, lower_limit: float, upper_limit: float) -> None:
        async with self._lock:
            self._limits[wallet_id] = {"lower_limit": lower_limit, "upper_limit": upper_limit}

    async def get_limits(self, wallet_id: str) -> Optional[Dict[str, float]]:
        limits = self._limits.get(wallet_id)
        return dict(limits) if limits else None

    async def set_nominees(self, wallet_id: str, nominees: List[Dict[str, Any]]) -> None:
        async with self._lock:
            self._nominees[wallet_id] = [dict(n) for n in nominees]

    async def get_nominees(self, wallet_id: str) -> List[Dict[str, Any]]:
        return [dict(n) for n in self._nominees.get(wallet_id, [])]

    async def record_cycle(self, summary: Dict[str, Any]) -> None:
        async with self._lock:
            self._cycles.insert(0, summary)
            del self._cycles[self.history_limit:]

    async def recent_cycles(self, limit: int = 20) -> List[Dict[str, Any]]:
        return list(self._cycles[:limit])


def _copy(record: ActivityRecord) -> ActivityRecord:
    return ActivityRecord(
        wallet_id=record.wallet_id,
        last_activity_at=record.last_activity_at,
        status=record.status,
        settled_at=record.settled_at,
        tx_hash=record.tx_hash,
    )


# ------------------------------------------------------------------ #
#  Singleton                                                           #
# ------------------------------------------------------------------ #

_activity_store: Optional[ActivityStore] = None


async def get_activity_store() -> ActivityStore:
    """Get or create the Redis-backed store singleton."""
    global _activity_store
    if _activity_store is None:
        store = RedisActivityStore()
        await store.connect()
        _activity_store = store
    return _activity_store


def set_activity_store(store: Optional[ActivityStore]) -> None:
    """Install a specific store (tests, pre-built clients)."""
    global _activity_store
    _activity_store = store


async def close_activity_store():
    """Close the store connection."""
    global _activity_store
    if _activity_store:
        await _activity_store.close()
        _activity_store = None
