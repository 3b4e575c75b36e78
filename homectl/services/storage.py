"""
HomeCtl - Key-Value Storage
=============================
Durable ``namespace -> key -> value`` storage for door states and members.
JSON files on disk, a SQLAlchemy database, or a plain dict when nothing
durable is available.
"""
import asyncio
import json
import os
import tempfile
from datetime import datetime
from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy import JSON, Column, DateTime, String, select
from sqlalchemy import delete as sa_delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from homectl.errors import StorageError


class KeyValueStore:
    """Interface every store implements."""

    async def put(self, namespace: str, key: str, value: Any) -> None:
        raise NotImplementedError

    async def delete(self, namespace: str, key: str) -> None:
        raise NotImplementedError

    async def get_all(self, namespace: str) -> Dict[str, Any]:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """Process-lifetime storage."""

    def __init__(self):
        self._data: Dict[str, Dict[str, Any]] = {}

    async def put(self, namespace: str, key: str, value: Any) -> None:
        self._data.setdefault(namespace, {})[key] = value

    async def delete(self, namespace: str, key: str) -> None:
        self._data.get(namespace, {}).pop(key, None)

    async def get_all(self, namespace: str) -> Dict[str, Any]:
        return dict(self._data.get(namespace, {}))


class JsonFileStore(KeyValueStore):
    """One JSON file per namespace under ``data_dir``, replaced atomically on write."""

    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        self._cache: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()
        logger.info(f"JSON store initialized at {os.path.abspath(data_dir)}")

    def _path(self, namespace: str) -> str:
        return os.path.join(self.data_dir, f"{namespace}.json")

    # ================================================================
    # Disk I/O (runs in a worker thread)
    # ================================================================
    def _load(self, namespace: str) -> Dict[str, Any]:
        path = self._path(namespace)
        if not os.path.exists(path):
            return {}
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to read {path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"Corrupt store file {path}")
        return data

    def _save(self, namespace: str, data: Dict[str, Any]) -> None:
        path = self._path(namespace)
        try:
            os.makedirs(self.data_dir, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.data_dir, prefix=f".{namespace}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, default=str)
            os.replace(tmp_path, path)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e

    async def _namespace(self, namespace: str) -> Dict[str, Any]:
        if namespace not in self._cache:
            self._cache[namespace] = await asyncio.to_thread(self._load, namespace)
        return self._cache[namespace]

    # ================================================================
    # KeyValueStore
    # ================================================================
    async def put(self, namespace: str, key: str, value: Any) -> None:
        async with self._lock:
            data = dict(await self._namespace(namespace))
            data[key] = value
            await asyncio.to_thread(self._save, namespace, data)
            self._cache[namespace] = data

    async def delete(self, namespace: str, key: str) -> None:
        async with self._lock:
            data = dict(await self._namespace(namespace))
            if key not in data:
                return
            del data[key]
            await asyncio.to_thread(self._save, namespace, data)
            self._cache[namespace] = data

    async def get_all(self, namespace: str) -> Dict[str, Any]:
        async with self._lock:
            return dict(await self._namespace(namespace))


# ============================================
# SQL Store
# ============================================

Base = declarative_base()


class StoreEntry(Base):
    __tablename__ = "kv_entries"
    namespace = Column(String(100), primary_key=True)
    key = Column(String(255), primary_key=True)
    value = Column(JSON)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SqlStore(KeyValueStore):
    """Rows of ``(namespace, key, value)`` in any SQLAlchemy async database."""

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.engine = create_async_engine(database_url, echo=echo)
        self.async_session = sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)
        self._initialized = False
        logger.info(f"SQL store initialized at {database_url}")

    async def init_db(self):
        if self._initialized:
            return
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to create tables: {e}") from e
        self._initialized = True

    async def put(self, namespace: str, key: str, value: Any) -> None:
        await self.init_db()
        try:
            async with self.async_session() as session:
                entry = await session.get(StoreEntry, (namespace, key))
                if entry is None:
                    session.add(StoreEntry(namespace=namespace, key=key, value=value))
                else:
                    entry.value = value
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to write {namespace}/{key}: {e}") from e

    async def delete(self, namespace: str, key: str) -> None:
        await self.init_db()
        try:
            async with self.async_session() as session:
                await session.execute(
                    sa_delete(StoreEntry).where(StoreEntry.namespace == namespace, StoreEntry.key == key)
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to delete {namespace}/{key}: {e}") from e

    async def get_all(self, namespace: str) -> Dict[str, Any]:
        await self.init_db()
        try:
            async with self.async_session() as session:
                rows = await session.execute(select(StoreEntry).where(StoreEntry.namespace == namespace))
                return {entry.key: entry.value for entry in rows.scalars()}
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read {namespace}: {e}") from e

    async def close(self):
        await self.engine.dispose()


def create_store(backend: str, data_dir: Optional[str] = None,
                 database_url: Optional[str] = None, echo: bool = False) -> KeyValueStore:
    """Build the configured store, falling back to memory if the disk is unusable."""
    if backend == "sql" and database_url:
        if data_dir:
            try:
                os.makedirs(data_dir, exist_ok=True)
            except OSError as e:
                logger.warning(f"Data dir {data_dir} unavailable ({e})")
        return SqlStore(database_url, echo=echo)
    if backend == "json" and data_dir:
        try:
            os.makedirs(data_dir, exist_ok=True)
            return JsonFileStore(data_dir)
        except OSError as e:
            logger.warning(f"Data dir {data_dir} unavailable ({e}); using memory-only storage")
    return MemoryStore()
