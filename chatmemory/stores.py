"""
Message store implementations.

- InMemoryStore: volatile, process-local storage for tests and development
- SQLiteStore: persistent local key/value storage backed by SQLite
- RedisStore: network key/value storage with optional expiration
"""

import copy
import dataclasses
import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import List, Dict, Any, Optional, Tuple

import aiosqlite
import redis.asyncio as redis

from .errors import MemoryConfigurationError, StorageQuotaError
from .interfaces import MemoryStore
from .models import StoredMessage

logger = logging.getLogger(__name__)

MESSAGES_NAMESPACE = 'chatmemory:messages:'
METADATA_NAMESPACE = 'chatmemory:metadata:'


def _apply_updates(message: StoredMessage, updates: Dict[str, Any]) -> StoredMessage:
    updates = {k: v for k, v in updates.items() if k != 'id'}
    return dataclasses.replace(message, **updates)


def _serialize_messages(messages: List[StoredMessage]) -> str:
    return json.dumps([m.to_dict() for m in messages])


def _deserialize_messages(data: Any, key: str) -> List[StoredMessage]:
    if not data:
        return []
    try:
        return [StoredMessage.from_dict(item) for item in json.loads(data)]
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        logger.error(f"Error parsing messages stored under '{key}': {e}")
        return []


def _deserialize_metadata(data: Any, key: str) -> Optional[Dict[str, Any]]:
    if not data:
        return None
    try:
        return json.loads(data)
    except json.JSONDecodeError as e:
        logger.error(f"Error parsing metadata stored under '{key}': {e}")
        return None


# =============================================================================
# In-Memory Store
# =============================================================================

class InMemoryStore(MemoryStore):
    """In-memory store. Data is lost when the process ends."""

    def __init__(self):
        """Initialize in-memory storage."""
        self._messages: Dict[str, List[StoredMessage]] = {}
        self._metadata: Dict[str, Dict[str, Any]] = {}

    async def get_messages(self, conversation_id: str) -> List[StoredMessage]:
        return list(self._messages.get(conversation_id, []))

    async def add_message(self, message: StoredMessage) -> None:
        self._messages.setdefault(message.conversation_id, []).append(message)

    async def update_message(self, message_id: str, updates: Dict[str, Any]) -> None:
        for messages in self._messages.values():
            for i, message in enumerate(messages):
                if message.id == message_id:
                    messages[i] = _apply_updates(message, updates)
                    return
        raise ValueError(f"Cannot update message '{message_id}': not found.")

    async def delete_message(self, message_id: str) -> None:
        for conversation_id, messages in self._messages.items():
            filtered = [m for m in messages if m.id != message_id]
            if len(filtered) != len(messages):
                self._messages[conversation_id] = filtered
                return
        raise ValueError(f"Cannot delete message '{message_id}': not found.")

    async def clear(self, conversation_id: str) -> None:
        self._messages.pop(conversation_id, None)
        self._metadata.pop(conversation_id, None)

    async def get_metadata(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        metadata = self._metadata.get(conversation_id)
        return copy.deepcopy(metadata) if metadata is not None else None

    async def set_metadata(self, conversation_id: str, metadata: Dict[str, Any]) -> None:
        self._metadata[conversation_id] = copy.deepcopy(metadata)

    async def replace_messages(self, conversation_id: str, messages: List[StoredMessage]) -> None:
        self._messages[conversation_id] = list(messages)

    async def get_conversation_ids(self) -> List[str]:
        return list(self._messages.keys())

    async def clear_all(self) -> None:
        self._messages.clear()
        self._metadata.clear()


# =============================================================================
# SQLite Key/Value Store
# =============================================================================

class SQLiteStore(MemoryStore):
    """
    Persistent key/value store backed by a SQLite file.

    Rows are addressed by (prefix, key), where the key is a fixed namespace
    followed by the conversation id, so stores with different prefixes never
    see each other's rows. Each conversation's full message array is
    serialized as one JSON value and rewritten on every write. When
    `quota_bytes` is set, or SQLite reports a full database, writes raise
    StorageQuotaError; message writes then keep the newest half of the
    conversation and retry once.
    """

    def __init__(
        self,
        db_path: str,
        prefix: str = '',
        quota_bytes: Optional[int] = None,
        create_db: bool = True,
    ):
        """
        Initialize SQLite store.

        Args:
            db_path: Path to SQLite database file
            prefix: App-specific prefix isolating this store's rows
            quota_bytes: Optional limit on the total UTF-8 size of stored values
            create_db: If True, create the key/value table on first use.
                      If False, skip table creation (assumes table already exists).
        """
        self.db_path = db_path
        self.prefix = prefix
        self.quota_bytes = quota_bytes
        self._create_db = create_db

    def _messages_key(self, conversation_id: str) -> str:
        return f"{MESSAGES_NAMESPACE}{conversation_id}"

    def _metadata_key(self, conversation_id: str) -> str:
        return f"{METADATA_NAMESPACE}{conversation_id}"

    async def _init_db(self):
        """Create the key/value table if needed."""
        if not self._create_db:
            return
        async with aiosqlite.connect(self.db_path) as conn:
            await conn.execute("""
            CREATE TABLE IF NOT EXISTS tb_kv (
                prefix TEXT NOT NULL,
                key TEXT NOT NULL,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (prefix, key)
            )
            """)
            await conn.commit()
        self._create_db = False

    async def _get(self, key: str) -> Optional[str]:
        await self._init_db()
        async with aiosqlite.connect(self.db_path) as conn:
            cursor = await conn.execute(
                "SELECT value FROM tb_kv WHERE prefix = ? AND key = ?",
                (self.prefix, key)
            )
            row = await cursor.fetchone()
            return row[0] if row else None

    async def _put(self, key: str, value: str) -> None:
        await self._init_db()
        now = datetime.now(timezone.utc).isoformat()
        async with aiosqlite.connect(self.db_path) as conn:
            if self.quota_bytes is not None:
                cursor = await conn.execute(
                    "SELECT COALESCE(SUM(LENGTH(CAST(value AS BLOB))), 0) FROM tb_kv "
                    "WHERE NOT (prefix = ? AND key = ?)",
                    (self.prefix, key)
                )
                row = await cursor.fetchone()
                if row[0] + len(value.encode('utf-8')) > self.quota_bytes:
                    raise StorageQuotaError(
                        f"Writing '{key}' would exceed the storage quota of {self.quota_bytes} bytes."
                    )
            try:
                await conn.execute(
                    "INSERT INTO tb_kv (prefix, key, value, updated_at) VALUES (?, ?, ?, ?) "
                    "ON CONFLICT(prefix, key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
                    (self.prefix, key, value, now)
                )
                await conn.commit()
            except sqlite3.OperationalError as e:
                if 'full' in str(e).lower():
                    raise StorageQuotaError(f"Storage is full while writing '{key}': {e}") from e
                raise

    async def _delete(self, *keys: str) -> None:
        await self._init_db()
        async with aiosqlite.connect(self.db_path) as conn:
            await conn.executemany(
                "DELETE FROM tb_kv WHERE prefix = ? AND key = ?",
                [(self.prefix, k) for k in keys]
            )
            await conn.commit()

    async def _scan(self, namespace: str) -> List[Tuple[str, str]]:
        """(conversation_id, value) pairs under `namespace` for this store's prefix."""
        await self._init_db()
        async with aiosqlite.connect(self.db_path) as conn:
            cursor = await conn.execute(
                "SELECT key, value FROM tb_kv WHERE prefix = ? AND substr(key, 1, ?) = ? ORDER BY key",
                (self.prefix, len(namespace), namespace)
            )
            return [(key[len(namespace):], value) for key, value in await cursor.fetchall()]

    async def _write_messages(self, conversation_id: str, messages: List[StoredMessage]) -> None:
        key = self._messages_key(conversation_id)
        try:
            await self._put(key, _serialize_messages(messages))
        except StorageQuotaError:
            # Keep the newest half and retry once
            trimmed = messages[len(messages) // 2:]
            logger.warning(
                f"Storage quota exceeded for conversation '{conversation_id}'. "
                f"Retrying with {len(trimmed)} of {len(messages)} messages."
            )
            await self._put(key, _serialize_messages(trimmed))

    async def get_messages(self, conversation_id: str) -> List[StoredMessage]:
        key = self._messages_key(conversation_id)
        return _deserialize_messages(await self._get(key), key)

    async def add_message(self, message: StoredMessage) -> None:
        messages = await self.get_messages(message.conversation_id)
        messages.append(message)
        await self._write_messages(message.conversation_id, messages)

    async def update_message(self, message_id: str, updates: Dict[str, Any]) -> None:
        # Messages are keyed by conversation, so search every conversation
        for conversation_id, value in await self._scan(MESSAGES_NAMESPACE):
            messages = _deserialize_messages(value, self._messages_key(conversation_id))
            for i, message in enumerate(messages):
                if message.id == message_id:
                    messages[i] = _apply_updates(message, updates)
                    await self._write_messages(conversation_id, messages)
                    return
        raise ValueError(f"Cannot update message '{message_id}': not found.")

    async def delete_message(self, message_id: str) -> None:
        for conversation_id, value in await self._scan(MESSAGES_NAMESPACE):
            messages = _deserialize_messages(value, self._messages_key(conversation_id))
            filtered = [m for m in messages if m.id != message_id]
            if len(filtered) != len(messages):
                await self._write_messages(conversation_id, filtered)
                return
        raise ValueError(f"Cannot delete message '{message_id}': not found.")

    async def clear(self, conversation_id: str) -> None:
        await self._delete(self._messages_key(conversation_id), self._metadata_key(conversation_id))

    async def get_metadata(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        key = self._metadata_key(conversation_id)
        return _deserialize_metadata(await self._get(key), key)

    async def set_metadata(self, conversation_id: str, metadata: Dict[str, Any]) -> None:
        await self._put(self._metadata_key(conversation_id), json.dumps(metadata))

    async def replace_messages(self, conversation_id: str, messages: List[StoredMessage]) -> None:
        await self._write_messages(conversation_id, list(messages))

    async def get_conversation_ids(self) -> List[str]:
        return [conversation_id for conversation_id, _ in await self._scan(MESSAGES_NAMESPACE)]

    async def clear_all(self) -> None:
        """Delete every message and metadata record under this store's prefix."""
        keys = [self._messages_key(cid) for cid, _ in await self._scan(MESSAGES_NAMESPACE)]
        keys += [self._metadata_key(cid) for cid, _ in await self._scan(METADATA_NAMESPACE)]
        if keys:
            await self._delete(*keys)


# =============================================================================
# Redis Key/Value Store
# =============================================================================

def _escape_glob(value: str) -> str:
    """Escape Redis glob metacharacters so a key prefix matches literally."""
    for char in ('\\', '*', '?', '[', ']'):
        value = value.replace(char, '\\' + char)
    return value


def _decode(key: Any) -> str:
    return key.decode('utf-8') if isinstance(key, bytes) else key


class RedisStore(MemoryStore):
    """
    Network key/value store using Redis.

    Messages and metadata live under `<key_prefix>messages:<conversation_id>`
    and `<key_prefix>metadata:<conversation_id>`. Every write rewrites the full
    value and, when `ttl` is set, refreshes its expiration.

    Usage:
        store = RedisStore.from_url("redis://localhost:6379/0", ttl=86400)
        memory = BufferMemory(store=store)
    """

    MESSAGES_PREFIX = 'messages:'
    METADATA_PREFIX = 'metadata:'

    def __init__(self, client: redis.Redis, ttl: Optional[int] = None, key_prefix: str = ''):
        """
        Initialize Redis store.

        Args:
            client: A redis.asyncio client
            ttl: Optional expiration in seconds applied on every write
            key_prefix: Optional prefix for all keys. It may not contain
                        'messages:' or 'metadata:', so no prefix can reach
                        into another prefix's key space.

        Raises:
            MemoryConfigurationError: If key_prefix contains a namespace marker.
        """
        for marker in (self.MESSAGES_PREFIX, self.METADATA_PREFIX):
            if marker in key_prefix:
                raise MemoryConfigurationError(
                    f"Redis key_prefix '{key_prefix}' must not contain '{marker}'"
                )
        self._redis = client
        self.ttl = ttl
        self.key_prefix = key_prefix

    @classmethod
    def from_url(cls, redis_url: str = "redis://localhost:6379/0", **opts: Any) -> 'RedisStore':
        """Create a store with a new client for `redis_url`."""
        client = redis.from_url(redis_url, encoding="utf-8", decode_responses=True)
        return cls(client, **opts)

    async def close(self) -> None:
        """Close the Redis connection."""
        await self._redis.aclose()

    def _messages_key(self, conversation_id: str) -> str:
        return f"{self.key_prefix}{self.MESSAGES_PREFIX}{conversation_id}"

    def _metadata_key(self, conversation_id: str) -> str:
        return f"{self.key_prefix}{self.METADATA_PREFIX}{conversation_id}"

    async def _put(self, key: str, value: str) -> None:
        await self._redis.set(key, value, ex=self.ttl)

    async def _keys(self, namespace: str) -> List[str]:
        pattern = f"{_escape_glob(self.key_prefix + namespace)}*"
        return [_decode(key) async for key in self._redis.scan_iter(match=pattern)]

    def _conversation_id_from_key(self, key: str) -> str:
        return key[len(self.key_prefix) + len(self.MESSAGES_PREFIX):]

    async def get_messages(self, conversation_id: str) -> List[StoredMessage]:
        key = self._messages_key(conversation_id)
        return _deserialize_messages(await self._redis.get(key), key)

    async def add_message(self, message: StoredMessage) -> None:
        messages = await self.get_messages(message.conversation_id)
        messages.append(message)
        await self._put(self._messages_key(message.conversation_id), _serialize_messages(messages))

    async def update_message(self, message_id: str, updates: Dict[str, Any]) -> None:
        for key in await self._keys(self.MESSAGES_PREFIX):
            messages = await self.get_messages(self._conversation_id_from_key(key))
            for i, message in enumerate(messages):
                if message.id == message_id:
                    messages[i] = _apply_updates(message, updates)
                    await self._put(key, _serialize_messages(messages))
                    return
        raise ValueError(f"Cannot update message '{message_id}': not found.")

    async def delete_message(self, message_id: str) -> None:
        for key in await self._keys(self.MESSAGES_PREFIX):
            messages = await self.get_messages(self._conversation_id_from_key(key))
            filtered = [m for m in messages if m.id != message_id]
            if len(filtered) != len(messages):
                await self._put(key, _serialize_messages(filtered))
                return
        raise ValueError(f"Cannot delete message '{message_id}': not found.")

    async def clear(self, conversation_id: str) -> None:
        await self._redis.delete(self._messages_key(conversation_id), self._metadata_key(conversation_id))

    async def get_metadata(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        key = self._metadata_key(conversation_id)
        return _deserialize_metadata(await self._redis.get(key), key)

    async def set_metadata(self, conversation_id: str, metadata: Dict[str, Any]) -> None:
        await self._put(self._metadata_key(conversation_id), json.dumps(metadata))

    async def replace_messages(self, conversation_id: str, messages: List[StoredMessage]) -> None:
        await self._put(self._messages_key(conversation_id), _serialize_messages(list(messages)))

    async def get_conversation_ids(self) -> List[str]:
        return [self._conversation_id_from_key(key) for key in await self._keys(self.MESSAGES_PREFIX)]

    async def clear_all(self) -> None:
        """Delete every message and metadata key under this store's prefix."""
        keys = await self._keys(self.MESSAGES_PREFIX) + await self._keys(self.METADATA_PREFIX)
        if keys:
            await self._redis.delete(*keys)


# =============================================================================
# Factory
# =============================================================================

_STORES: Dict[str, type] = {
    'memory': InMemoryStore,
    'sqlite': SQLiteStore,
    'redis': RedisStore,
}


def store_from_name(name: str, **opts: Any) -> MemoryStore:
    """
    Create a store by name.

    Args:
        name: Store name ('memory', 'sqlite', 'redis').
        **opts: Store-specific options:
            - sqlite: db_path (required), prefix, quota_bytes, create_db
            - redis: client or redis_url, ttl, key_prefix

    Returns:
        MemoryStore instance.

    Raises:
        ValueError: If the store name is unknown or required options are missing.
    """
    if name not in _STORES:
        raise ValueError(f"Unknown store: {name}. Available: {list(_STORES.keys())}")

    if name == 'sqlite':
        if 'db_path' not in opts:
            raise ValueError("The 'sqlite' store requires a db_path option")
        return SQLiteStore(
            db_path=opts['db_path'],
            prefix=opts.get('prefix', ''),
            quota_bytes=opts.get('quota_bytes'),
            create_db=opts.get('create_db', True),
        )

    if name == 'redis':
        settings = {'ttl': opts.get('ttl'), 'key_prefix': opts.get('key_prefix', '')}
        if opts.get('client') is not None:
            return RedisStore(opts['client'], **settings)
        return RedisStore.from_url(opts.get('redis_url', "redis://localhost:6379/0"), **settings)

    return InMemoryStore()
