"""
Back-office: entity store

Keyed document storage for the three collections (customers, products,
orders). Each document is addressed by (partition_key, row_key) and carries
an integer ``version``:

- INSERT_ONLY never overwrites; an existing key raises ConflictError.
- REPLACE_EXISTING only succeeds when the stored version still equals the
  version the caller read, then bumps it. Otherwise ConflictError.
- delete with an ``expected_version`` only removes that version of the row
  and reports False otherwise.

SqlEntityStore keeps every collection in one ``entities`` table;
MemoryEntityStore is the same contract over a dict.
"""

import json
import logging
from enum import Enum
from typing import Protocol

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from sqlalchemy.orm import sessionmaker

from .errors import ConflictError, StoreError

logger = logging.getLogger(__name__)

CUSTOMERS = "customers"
PRODUCTS = "products"
ORDERS = "orders"

_KEY_FIELDS = ("partition_key", "row_key", "version")


class PutMode(str, Enum):
    INSERT_ONLY = "insert_only"
    REPLACE_EXISTING = "replace_existing"


class EntityStore(Protocol):
    async def get(self, collection: str, partition_key: str, row_key: str) -> dict | None: ...

    async def put(self, collection: str, entity: dict, mode: PutMode) -> dict: ...

    async def delete(
        self, collection: str, partition_key: str, row_key: str, expected_version: int | None = None
    ) -> bool: ...

    async def list_all(self, collection: str, limit: int | None = None) -> list[dict]: ...


def _body(entity: dict) -> str:
    return json.dumps({k: v for k, v in entity.items() if k not in _KEY_FIELDS}, default=str)


def _document(partition_key: str, row_key: str, version: int, data) -> dict:
    body = json.loads(data) if isinstance(data, str) else data
    return {**body, "partition_key": partition_key, "row_key": row_key, "version": version}


# ── SQL ──────────────────────────────────────────

CREATE_ENTITIES_TABLE = """
    CREATE TABLE IF NOT EXISTS entities (
        collection    VARCHAR(32)  NOT NULL,
        partition_key VARCHAR(128) NOT NULL,
        row_key       VARCHAR(128) NOT NULL,
        version       INTEGER      NOT NULL,
        data          TEXT         NOT NULL,
        PRIMARY KEY (collection, partition_key, row_key)
    )
"""


async def create_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.execute(text(CREATE_ENTITIES_TABLE))


class SqlEntityStore:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    async def get(self, collection: str, partition_key: str, row_key: str) -> dict | None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    text("""
                        SELECT partition_key, row_key, version, data
                        FROM entities
                        WHERE collection = :collection
                          AND partition_key = :pk AND row_key = :rk
                    """),
                    {"collection": collection, "pk": partition_key, "rk": row_key},
                )
                row = result.fetchone()
        except SQLAlchemyError as e:
            logger.exception("Read failed: %s %s/%s", collection, partition_key, row_key)
            raise StoreError(str(e)) from e
        if not row:
            return None
        return _document(row.partition_key, row.row_key, row.version, row.data)

    async def put(self, collection: str, entity: dict, mode: PutMode) -> dict:
        mode = PutMode(mode)
        pk, rk = entity["partition_key"], entity["row_key"]
        params = {"collection": collection, "pk": pk, "rk": rk, "data": _body(entity)}

        async with self._session_factory() as session:
            try:
                if mode is PutMode.INSERT_ONLY:
                    version = 1
                    await session.execute(
                        text("""
                            INSERT INTO entities (collection, partition_key, row_key, version, data)
                            VALUES (:collection, :pk, :rk, :version, :data)
                        """),
                        {**params, "version": version},
                    )
                else:
                    expected = entity.get("version", 0)
                    version = expected + 1
                    # version guard: zero rows means a concurrent writer or a deleted row
                    result = await session.execute(
                        text("""
                            UPDATE entities
                            SET data = :data, version = :version
                            WHERE collection = :collection
                              AND partition_key = :pk AND row_key = :rk
                              AND version = :expected
                        """),
                        {**params, "version": version, "expected": expected},
                    )
                    if result.rowcount != 1:
                        raise ConflictError(
                            f"{collection} {pk}/{rk} was changed or removed since it was read (expected version {expected})."
                        )
                await session.commit()
            except IntegrityError as e:
                raise ConflictError(f"{collection} {pk}/{rk} already exists.") from e
            except SQLAlchemyError as e:
                logger.exception("Write failed: %s %s/%s", collection, pk, rk)
                raise StoreError(str(e)) from e

        return {**entity, "version": version}

    async def delete(
        self, collection: str, partition_key: str, row_key: str, expected_version: int | None = None
    ) -> bool:
        sql = """
            DELETE FROM entities
            WHERE collection = :collection
              AND partition_key = :pk AND row_key = :rk
        """
        params: dict = {"collection": collection, "pk": partition_key, "rk": row_key}
        if expected_version is not None:
            sql += " AND version = :expected"
            params["expected"] = expected_version
        try:
            async with self._session_factory() as session:
                result = await session.execute(text(sql), params)
                removed = result.rowcount > 0
                await session.commit()
        except SQLAlchemyError as e:
            logger.exception("Delete failed: %s %s/%s", collection, partition_key, row_key)
            raise StoreError(str(e)) from e
        return removed

    async def list_all(self, collection: str, limit: int | None = None) -> list[dict]:
        sql = """
            SELECT partition_key, row_key, version, data
            FROM entities
            WHERE collection = :collection
            ORDER BY partition_key ASC, row_key ASC
        """
        params: dict = {"collection": collection}
        if limit is not None:
            sql += " LIMIT :limit"
            params["limit"] = limit
        try:
            async with self._session_factory() as session:
                result = await session.execute(text(sql), params)
                rows = result.fetchall()
        except SQLAlchemyError as e:
            logger.exception("Scan failed: %s", collection)
            raise StoreError(str(e)) from e
        return [_document(r.partition_key, r.row_key, r.version, r.data) for r in rows]


def sql_store(engine: AsyncEngine) -> SqlEntityStore:
    return SqlEntityStore(sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))


# ── In-memory ────────────────────────────────────


class MemoryEntityStore:
    """Dict-backed store. Documents are kept as JSON text so callers never share state."""

    def __init__(self) -> None:
        self._rows: dict[tuple[str, str, str], tuple[int, str]] = {}

    async def get(self, collection: str, partition_key: str, row_key: str) -> dict | None:
        row = self._rows.get((collection, partition_key, row_key))
        if row is None:
            return None
        version, data = row
        return _document(partition_key, row_key, version, data)

    async def put(self, collection: str, entity: dict, mode: PutMode) -> dict:
        mode = PutMode(mode)
        pk, rk = entity["partition_key"], entity["row_key"]
        key = (collection, pk, rk)
        current = self._rows.get(key)

        if mode is PutMode.INSERT_ONLY:
            if current is not None:
                raise ConflictError(f"{collection} {pk}/{rk} already exists.")
            version = 1
        else:
            expected = entity.get("version", 0)
            if current is None or current[0] != expected:
                raise ConflictError(
                    f"{collection} {pk}/{rk} was changed or removed since it was read (expected version {expected})."
                )
            version = expected + 1

        self._rows[key] = (version, _body(entity))
        return {**entity, "version": version}

    async def delete(
        self, collection: str, partition_key: str, row_key: str, expected_version: int | None = None
    ) -> bool:
        key = (collection, partition_key, row_key)
        current = self._rows.get(key)
        if current is None or (expected_version is not None and current[0] != expected_version):
            return False
        del self._rows[key]
        return True

    async def list_all(self, collection: str, limit: int | None = None) -> list[dict]:
        keys = sorted(k for k in self._rows if k[0] == collection)
        if limit is not None:
            keys = keys[:limit]
        return [_document(pk, rk, *self._rows[(c, pk, rk)]) for c, pk, rk in keys]
