"""SQLite-backed record store with a write connection and a query-only read connection."""

import asyncio
import json
import logging
import sqlite3
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple, Type, Union

import aiosqlite

from ..errors import RecordNotFound, StoreNotInitialized, UnknownCollection
from ..models import (
    AccessCode,
    Product,
    Purchase,
    QRCode,
    Record,
    Setting,
    Subscription,
    User,
)
from .schema import COLLECTIONS, INDEXES_SQL, SCHEMA_SQL, SCHEMA_VERSION, Collection

logger = logging.getLogger(__name__)

Key = Union[int, str]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _to_db_value(layout: Collection, column: str, value: Any) -> Any:
    if value is None:
        return None
    if column in layout.json_columns:
        return json.dumps(value, ensure_ascii=False)
    if column in layout.bool_columns or isinstance(value, bool):
        return int(bool(value))
    if column in layout.datetime_columns:
        return parse_timestamp(value).isoformat()
    return value


def _jsonable(record: Dict[str, Any]) -> Dict[str, Any]:
    return {
        k: v.isoformat() if isinstance(v, datetime) else v
        for k, v in record.items()
    }


class SQLiteStore:
    """Keyed collections with secondary-index lookups.

    Every generic operation runs in its own transaction. Writes go through an
    aiosqlite connection guarded by a lock; reads use a second, query-only
    connection, so a write becomes visible to reads only once committed.
    """

    def __init__(self, path: str):
        self.path = path
        self._read_conn: Optional[aiosqlite.Connection] = None
        self._write_conn: Optional[aiosqlite.Connection] = None
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create tables, indexes, and open connections."""
        if self._write_conn is not None:
            return

        self._write_conn = await aiosqlite.connect(self.path)
        await self._write_conn.execute("PRAGMA journal_mode=WAL;")
        await self._write_conn.execute("PRAGMA foreign_keys=ON;")
        await self._write_conn.executescript(SCHEMA_SQL)
        for idx_sql in INDEXES_SQL:
            await self._write_conn.execute(idx_sql)

        cur = await self._write_conn.execute("PRAGMA user_version;")
        row = await cur.fetchone()
        current_version = row[0] if row else 0
        if current_version == 0:
            await self._write_conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION};")
        elif current_version > SCHEMA_VERSION:
            logger.warning(
                f"Database {self.path} has schema version {current_version}, "
                f"newer than supported version {SCHEMA_VERSION}"
            )
        await self._write_conn.commit()

        self._read_conn = await aiosqlite.connect(self.path)
        self._read_conn.row_factory = sqlite3.Row
        await self._read_conn.execute("PRAGMA journal_mode=WAL;")
        await self._read_conn.execute("PRAGMA query_only=ON;")
        logger.info(f"Record store opened: {self.path}")

    async def close(self) -> None:
        """Close all database connections."""
        if self._write_conn:
            await self._write_conn.close()
            self._write_conn = None
        if self._read_conn:
            await self._read_conn.close()
            self._read_conn = None
        logger.info(f"Record store closed: {self.path}")

    # ---- helpers ----

    def _reader(self) -> aiosqlite.Connection:
        if self._read_conn is None:
            raise StoreNotInitialized()
        return self._read_conn

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        if self._write_conn is None:
            raise StoreNotInitialized()
        async with self._write_lock:
            try:
                yield self._write_conn
                await self._write_conn.commit()
            except Exception:
                await self._write_conn.rollback()
                raise

    @staticmethod
    def _collection(name: str) -> Collection:
        try:
            return COLLECTIONS[name]
        except KeyError:
            raise UnknownCollection(name) from None

    @staticmethod
    def _check_index(layout: Collection, index: str) -> None:
        if index != layout.key and index not in layout.indexes:
            raise ValueError(f"Collection {layout.name} has no index {index!r}")

    def _record_to_row(self, layout: Collection, record: Dict[str, Any]) -> Dict[str, Any]:
        unknown = set(record) - set(layout.columns)
        if unknown:
            raise ValueError(
                f"Unknown fields for {layout.name}: {', '.join(sorted(unknown))}"
            )
        row = {
            col: _to_db_value(layout, col, value)
            for col, value in record.items()
        }
        if layout.autoincrement and row.get(layout.key) is None:
            row.pop(layout.key, None)
        return row

    @staticmethod
    def _row_to_record(layout: Collection, row: sqlite3.Row) -> Dict[str, Any]:
        record = dict(row)
        for col in layout.json_columns:
            if record.get(col) is not None:
                record[col] = json.loads(record[col])
        for col in layout.bool_columns:
            if record.get(col) is not None:
                record[col] = bool(record[col])
        for col in layout.datetime_columns:
            record[col] = parse_timestamp(record.get(col))
        return record

    @staticmethod
    def _upsert_sql(layout: Collection, row: Dict[str, Any]) -> Tuple[str, List[Any]]:
        cols = list(row)
        placeholders = ", ".join("?" * len(cols))
        updates = [c for c in cols if c != layout.key]
        if updates:
            conflict = "DO UPDATE SET " + ", ".join(f"{c} = excluded.{c}" for c in updates)
        else:
            conflict = "DO NOTHING"
        sql = (
            f"INSERT INTO {layout.name} ({', '.join(cols)}) VALUES ({placeholders}) "
            f"ON CONFLICT({layout.key}) {conflict}"
        )
        return sql, [row[c] for c in cols]

    # ---- Generic CRUD ----

    async def add(self, collection: str, record: Dict[str, Any]) -> Key:
        layout = self._collection(collection)
        row = self._record_to_row(layout, record)
        if not layout.autoincrement and row.get(layout.key) is None:
            raise ValueError(f"{layout.name} records require a {layout.key!r}")
        cols = list(row)
        async with self._transaction() as conn:
            cur = await conn.execute(
                f"INSERT INTO {layout.name} ({', '.join(cols)}) "
                f"VALUES ({', '.join('?' * len(cols))})",
                [row[c] for c in cols],
            )
            key = cur.lastrowid if layout.autoincrement else row[layout.key]
        logger.debug(f"Added to {layout.name} with key {key}")
        return key

    async def get(self, collection: str, key: Key) -> Optional[Dict[str, Any]]:
        layout = self._collection(collection)
        cur = await self._reader().execute(
            f"SELECT * FROM {layout.name} WHERE {layout.key} = ?", (key,)
        )
        row = await cur.fetchone()
        return self._row_to_record(layout, row) if row else None

    async def get_all(
        self,
        collection: str,
        index: Optional[str] = None,
        value: Any = None,
    ) -> List[Dict[str, Any]]:
        """Fetch every record, or the records whose ``index`` equals ``value``.

        With an index and no value, all records are returned ordered by that index.
        """
        layout = self._collection(collection)
        sql = f"SELECT * FROM {layout.name}"
        params: list = []
        if index is not None:
            self._check_index(layout, index)
            if value is not None:
                sql += f" WHERE {index} = ?"
                params.append(_to_db_value(layout, index, value))
            sql += f" ORDER BY {index}, {layout.key}"
        else:
            sql += f" ORDER BY {layout.key}"
        cur = await self._reader().execute(sql, params)
        rows = await cur.fetchall()
        logger.debug(f"get_all({layout.name!r}): retrieved {len(rows)} items")
        return [self._row_to_record(layout, r) for r in rows]

    async def update(self, collection: str, record: Dict[str, Any]) -> Key:
        """Update the given fields of the record identified by its key.

        Fields not named in ``record`` keep their stored values. If no record
        has that key, ``record`` is inserted as given.
        """
        layout = self._collection(collection)
        row = self._record_to_row(layout, record)
        key = row.get(layout.key)
        if key is None:
            raise ValueError(f"update on {layout.name} requires a {layout.key!r}")
        cols = [c for c in row if c != layout.key]
        async with self._transaction() as conn:
            if cols:
                cur = await conn.execute(
                    f"UPDATE {layout.name} SET {', '.join(f'{c} = ?' for c in cols)} "
                    f"WHERE {layout.key} = ?",
                    [row[c] for c in cols] + [key],
                )
                found = cur.rowcount > 0
            else:
                cur = await conn.execute(
                    f"SELECT 1 FROM {layout.name} WHERE {layout.key} = ?", (key,)
                )
                found = await cur.fetchone() is not None
            if not found:
                await conn.execute(
                    f"INSERT INTO {layout.name} ({', '.join(row)}) "
                    f"VALUES ({', '.join('?' * len(row))})",
                    list(row.values()),
                )
                logger.debug(f"Inserted into {layout.name} with key {key}")
        return key

    async def delete(self, collection: str, key: Key) -> bool:
        layout = self._collection(collection)
        async with self._transaction() as conn:
            cur = await conn.execute(
                f"DELETE FROM {layout.name} WHERE {layout.key} = ?", (key,)
            )
            deleted = cur.rowcount > 0
        logger.debug(f"Deleted {layout.name} record {key}: {deleted}")
        return deleted

    async def count(
        self,
        collection: str,
        index: Optional[str] = None,
        value: Any = None,
    ) -> int:
        layout = self._collection(collection)
        sql = f"SELECT COUNT(*) FROM {layout.name}"
        params: list = []
        if index is not None and value is not None:
            self._check_index(layout, index)
            sql += f" WHERE {index} = ?"
            params.append(_to_db_value(layout, index, value))
        cur = await self._reader().execute(sql, params)
        row = await cur.fetchone()
        return row[0]

    async def clear(self) -> None:
        """Delete every record of every collection in one transaction."""
        async with self._transaction() as conn:
            for name in COLLECTIONS:
                await conn.execute(f"DELETE FROM {name}")
        logger.info(f"Cleared all collections in {self.path}")

    async def _merge(
        self,
        collection: str,
        model: Type[Record],
        key: Key,
        changes: Dict[str, Any],
        stamp: bool = True,
    ) -> Any:
        """Load a record, apply named field changes, stamp updated_at, save."""
        layout = self._collection(collection)
        if layout.key in changes:
            raise TypeError(f"Cannot change the key of a {collection} record")
        current = await self.get(collection, key)
        if current is None:
            raise RecordNotFound(collection, key)
        if stamp:
            changes = {**changes, "updated_at": utcnow()}
        updated = replace(model.from_record(current), **changes)
        await self.update(collection, updated.to_record())
        return updated

    # ---- Users ----

    async def add_user(
        self,
        name: str,
        email: str,
        phone: Optional[str] = None,
        product: str = "",
        purchase_date: Optional[datetime] = None,
        expiry_date: Optional[datetime] = None,
        amount: float = 0,
        status: str = "pending",
    ) -> int:
        now = utcnow()
        user = User(
            name=name,
            email=email,
            phone=phone,
            product=product or "",
            purchase_date=purchase_date or now,
            expiry_date=expiry_date,
            amount=amount or 0,
            status=status or "pending",
            created_at=now,
            updated_at=now,
        )
        user_id = await self.add("users", user.to_record())
        logger.info(f"Added user {email} (ID: {user_id})")
        return user_id

    async def get_user(self, user_id: int) -> Optional[User]:
        record = await self.get("users", user_id)
        return User.from_record(record) if record else None

    async def get_user_by_email(self, email: str) -> Optional[User]:
        records = await self.get_all("users", "email", email)
        return User.from_record(records[0]) if records else None

    async def get_all_users(self) -> List[User]:
        return [User.from_record(r) for r in await self.get_all("users")]

    async def update_user(self, user_id: int, **changes: Any) -> User:
        return await self._merge("users", User, user_id, changes)

    async def delete_user(self, user_id: int) -> bool:
        """Delete a user together with all of their codes and subscriptions."""
        async with self._transaction() as conn:
            await conn.execute("DELETE FROM codes WHERE user_id = ?", (user_id,))
            await conn.execute("DELETE FROM subscriptions WHERE user_id = ?", (user_id,))
            cur = await conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
            deleted = cur.rowcount > 0
        if deleted:
            logger.info(f"Deleted user {user_id} with codes and subscriptions")
        else:
            logger.info(f"Attempted to delete user {user_id}, but no record was found.")
        return deleted

    # ---- Access Codes ----

    async def add_code(
        self,
        user_id: int,
        code: str,
        type: str,
        is_active: bool = True,
        expires_at: Optional[datetime] = None,
    ) -> int:
        now = utcnow()
        record = AccessCode(
            user_id=user_id,
            code=code,
            type=type,
            is_active=is_active,
            created_at=now,
            updated_at=now,
            expires_at=expires_at,
        )
        return await self.add("codes", record.to_record())

    async def get_code(self, code: str) -> Optional[AccessCode]:
        records = await self.get_all("codes", "code", code)
        return AccessCode.from_record(records[0]) if records else None

    async def get_code_by_id(self, code_id: int) -> Optional[AccessCode]:
        record = await self.get("codes", code_id)
        return AccessCode.from_record(record) if record else None

    async def get_user_codes(
        self, user_id: int, type: Optional[str] = None
    ) -> List[AccessCode]:
        """Active codes of a user, optionally of one type."""
        records = await self.get_all("codes", "user_id", user_id)
        codes = [AccessCode.from_record(r) for r in records]
        return [
            c for c in codes
            if c.is_active and (type is None or c.type == type)
        ]

    async def get_code_history(self, user_id: int) -> List[AccessCode]:
        """Every code ever issued to a user, active or not, oldest first."""
        records = await self.get_all("codes", "user_id", user_id)
        return [AccessCode.from_record(r) for r in records]

    async def update_code(self, code_id: int, **changes: Any) -> AccessCode:
        return await self._merge("codes", AccessCode, code_id, changes)

    async def delete_code(self, code_id: int) -> bool:
        return await self.delete("codes", code_id)

    async def delete_user_codes(self, user_id: int) -> int:
        async with self._transaction() as conn:
            cur = await conn.execute("DELETE FROM codes WHERE user_id = ?", (user_id,))
            deleted = cur.rowcount
        logger.info(f"Deleted {deleted} codes of user {user_id}")
        return deleted

    # ---- Products ----

    async def add_product(
        self,
        name: Optional[Dict[str, str]] = None,
        description: Optional[Dict[str, str]] = None,
        price: float = 0,
        img: str = "",
        category: str = "",
        is_active: bool = True,
    ) -> int:
        now = utcnow()
        product = Product(
            name=name or {},
            description=description or {},
            price=price or 0,
            img=img or "",
            category=category or "",
            is_active=is_active,
            created_at=now,
            updated_at=now,
        )
        return await self.add("products", product.to_record())

    async def get_product(self, product_id: int) -> Optional[Product]:
        record = await self.get("products", product_id)
        return Product.from_record(record) if record else None

    async def get_all_products(self) -> List[Product]:
        return [Product.from_record(r) for r in await self.get_all("products")]

    async def update_product(self, product_id: int, **changes: Any) -> Product:
        return await self._merge("products", Product, product_id, changes)

    async def delete_product(self, product_id: int) -> bool:
        return await self.delete("products", product_id)

    # ---- Subscriptions ----

    async def add_subscription(
        self,
        user_id: int,
        tier: str = "Basic",
        start_date: Optional[datetime] = None,
        expiry_date: Optional[datetime] = None,
        is_active: bool = True,
    ) -> int:
        now = utcnow()
        subscription = Subscription(
            user_id=user_id,
            tier=tier or "Basic",
            start_date=start_date or now,
            expiry_date=expiry_date,
            is_active=is_active,
            created_at=now,
            updated_at=now,
        )
        return await self.add("subscriptions", subscription.to_record())

    async def get_user_subscription(self, user_id: int) -> Optional[Subscription]:
        records = await self.get_all("subscriptions", "user_id", user_id)
        return Subscription.from_record(records[0]) if records else None

    async def update_subscription(self, subscription_id: int, **changes: Any) -> Subscription:
        return await self._merge("subscriptions", Subscription, subscription_id, changes)

    async def delete_user_subscriptions(self, user_id: int) -> int:
        async with self._transaction() as conn:
            cur = await conn.execute(
                "DELETE FROM subscriptions WHERE user_id = ?", (user_id,)
            )
            return cur.rowcount

    # ---- Purchases ----

    async def add_purchase(
        self,
        user_id: int,
        product_id: int,
        amount: float = 0,
        purchase_date: Optional[datetime] = None,
        status: str = "completed",
        payment_method: str = "",
    ) -> int:
        now = utcnow()
        purchase = Purchase(
            user_id=user_id,
            product_id=product_id,
            amount=amount or 0,
            purchase_date=purchase_date or now,
            status=status or "completed",
            payment_method=payment_method or "",
            created_at=now,
        )
        return await self.add("purchases", purchase.to_record())

    async def get_user_purchases(self, user_id: int) -> List[Purchase]:
        records = await self.get_all("purchases", "user_id", user_id)
        return [Purchase.from_record(r) for r in records]

    async def get_all_purchases(self) -> List[Purchase]:
        return [Purchase.from_record(r) for r in await self.get_all("purchases")]

    # ---- QR Codes ----

    async def save_qr_code(
        self,
        data: str = "",
        type: str = "text",
        user_id: Optional[int] = None,
        settings: Optional[Dict[str, Any]] = None,
    ) -> int:
        qr = QRCode(
            user_id=user_id,
            type=type or "text",
            data=data or "",
            settings=settings or {},
            created_date=utcnow(),
        )
        return await self.add("qr_codes", qr.to_record())

    async def get_user_qr_codes(self, user_id: int) -> List[QRCode]:
        records = await self.get_all("qr_codes", "user_id", user_id)
        return [QRCode.from_record(r) for r in records]

    # ---- Settings ----

    async def get_setting(self, key: str, default: Any = None) -> Any:
        record = await self.get("settings", key)
        return record["value"] if record else default

    async def set_setting(self, key: str, value: Any) -> None:
        setting = Setting(key=key, value=value, updated_at=utcnow())
        await self.update("settings", setting.to_record())

    # ---- Statistics ----

    async def get_stats(self) -> Dict[str, Any]:
        total_users = await self.count("users")
        active_users = await self.count("users", "status", "active")
        total_products = await self.count("products")

        total_revenue = 0.0
        for user in await self.get_all_users():
            try:
                total_revenue += float(user.amount or 0)
            except (TypeError, ValueError):
                continue

        return {
            "total_users": total_users,
            "active_users": active_users,
            "pending_users": total_users - active_users,
            "total_revenue": total_revenue,
            "total_products": total_products,
        }

    # ---- Export / Import ----

    async def export_data(self) -> Dict[str, Any]:
        """Dump every collection as JSON-ready records."""
        data = {}
        for name in COLLECTIONS:
            data[name] = [_jsonable(r) for r in await self.get_all(name)]
        return {
            "version": SCHEMA_VERSION,
            "export_date": utcnow().isoformat(),
            "data": data,
        }

    async def import_data(self, payload: Dict[str, Any]) -> Dict[str, int]:
        """Upsert exported records in a single transaction.

        Accepts either the envelope produced by export_data() or its "data" mapping.
        Returns the number of records written per collection.
        """
        data = payload.get("data", payload) if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise ValueError("Import payload must be a mapping of collections")

        statements: List[Tuple[str, Sequence[Any]]] = []
        written: Dict[str, int] = {}
        for name, records in data.items():
            if name not in COLLECTIONS:
                logger.warning(f"Skipping unknown collection in import: {name}")
                continue
            layout = COLLECTIONS[name]
            for record in records or []:
                row = self._record_to_row(layout, record)
                if row.get(layout.key) is None:
                    cols = list(row)
                    statements.append((
                        f"INSERT INTO {name} ({', '.join(cols)}) "
                        f"VALUES ({', '.join('?' * len(cols))})",
                        [row[c] for c in cols],
                    ))
                else:
                    statements.append(self._upsert_sql(layout, row))
                written[name] = written.get(name, 0) + 1

        async with self._transaction() as conn:
            for sql, params in statements:
                await conn.execute(sql, params)
        logger.info(f"Imported records: {written}")
        return written
