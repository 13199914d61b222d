"""Database schema definitions and collection metadata."""

from dataclasses import dataclass
from typing import Dict, Tuple

SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    email TEXT NOT NULL,
    phone TEXT,
    product TEXT NOT NULL DEFAULT '',
    purchase_date TEXT,
    expiry_date TEXT,
    amount REAL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'pending',
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS products (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT,
    description TEXT,
    price REAL DEFAULT 0,
    img TEXT DEFAULT '',
    category TEXT DEFAULT '',
    is_active INTEGER DEFAULT 1,
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS subscriptions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    tier TEXT NOT NULL DEFAULT 'Basic',
    start_date TEXT,
    expiry_date TEXT,
    is_active INTEGER DEFAULT 1,
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS codes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    code TEXT NOT NULL,
    type TEXT NOT NULL,
    is_active INTEGER DEFAULT 1,
    created_at TEXT,
    updated_at TEXT,
    expires_at TEXT
);

CREATE TABLE IF NOT EXISTS purchases (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    product_id INTEGER,
    amount REAL DEFAULT 0,
    purchase_date TEXT,
    status TEXT DEFAULT 'completed',
    payment_method TEXT DEFAULT '',
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS qr_codes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER,
    type TEXT DEFAULT 'text',
    data TEXT DEFAULT '',
    settings TEXT,
    created_date TEXT
);

CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT,
    updated_at TEXT
);
"""

INDEXES_SQL = [
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_users_email ON users(email);",
    "CREATE INDEX IF NOT EXISTS idx_users_phone ON users(phone);",
    "CREATE INDEX IF NOT EXISTS idx_users_status ON users(status);",
    "CREATE INDEX IF NOT EXISTS idx_users_purchase_date ON users(purchase_date);",
    "CREATE INDEX IF NOT EXISTS idx_products_name ON products(name);",
    "CREATE INDEX IF NOT EXISTS idx_products_price ON products(price);",
    "CREATE INDEX IF NOT EXISTS idx_subscriptions_user ON subscriptions(user_id);",
    "CREATE INDEX IF NOT EXISTS idx_subscriptions_tier ON subscriptions(tier);",
    "CREATE INDEX IF NOT EXISTS idx_subscriptions_expiry ON subscriptions(expiry_date);",
    "CREATE INDEX IF NOT EXISTS idx_codes_user ON codes(user_id);",
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_codes_code ON codes(code);",
    "CREATE INDEX IF NOT EXISTS idx_codes_type ON codes(type);",
    "CREATE INDEX IF NOT EXISTS idx_codes_is_active ON codes(is_active);",
    "CREATE INDEX IF NOT EXISTS idx_purchases_user ON purchases(user_id);",
    "CREATE INDEX IF NOT EXISTS idx_purchases_product ON purchases(product_id);",
    "CREATE INDEX IF NOT EXISTS idx_purchases_date ON purchases(purchase_date);",
    "CREATE INDEX IF NOT EXISTS idx_purchases_status ON purchases(status);",
    "CREATE INDEX IF NOT EXISTS idx_qr_codes_user ON qr_codes(user_id);",
    "CREATE INDEX IF NOT EXISTS idx_qr_codes_type ON qr_codes(type);",
    "CREATE INDEX IF NOT EXISTS idx_qr_codes_created ON qr_codes(created_date);",
]


@dataclass(frozen=True)
class Collection:
    """Column layout of one table, used to convert records to rows and back."""
    name: str
    columns: Tuple[str, ...]
    indexes: Tuple[str, ...] = ()
    key: str = "id"
    autoincrement: bool = True
    json_columns: Tuple[str, ...] = ()
    bool_columns: Tuple[str, ...] = ()
    datetime_columns: Tuple[str, ...] = ()


COLLECTIONS: Dict[str, Collection] = {
    c.name: c
    for c in (
        Collection(
            name="users",
            columns=(
                "id", "name", "email", "phone", "product", "purchase_date",
                "expiry_date", "amount", "status", "created_at", "updated_at",
            ),
            indexes=("email", "phone", "status", "purchase_date"),
            datetime_columns=("purchase_date", "expiry_date", "created_at", "updated_at"),
        ),
        Collection(
            name="products",
            columns=(
                "id", "name", "description", "price", "img", "category",
                "is_active", "created_at", "updated_at",
            ),
            indexes=("name", "price"),
            json_columns=("name", "description"),
            bool_columns=("is_active",),
            datetime_columns=("created_at", "updated_at"),
        ),
        Collection(
            name="subscriptions",
            columns=(
                "id", "user_id", "tier", "start_date", "expiry_date",
                "is_active", "created_at", "updated_at",
            ),
            indexes=("user_id", "tier", "expiry_date"),
            bool_columns=("is_active",),
            datetime_columns=("start_date", "expiry_date", "created_at", "updated_at"),
        ),
        Collection(
            name="codes",
            columns=(
                "id", "user_id", "code", "type", "is_active",
                "created_at", "updated_at", "expires_at",
            ),
            indexes=("user_id", "code", "type", "is_active"),
            bool_columns=("is_active",),
            datetime_columns=("created_at", "updated_at", "expires_at"),
        ),
        Collection(
            name="purchases",
            columns=(
                "id", "user_id", "product_id", "amount", "purchase_date",
                "status", "payment_method", "created_at",
            ),
            indexes=("user_id", "product_id", "purchase_date", "status"),
            datetime_columns=("purchase_date", "created_at"),
        ),
        Collection(
            name="qr_codes",
            columns=("id", "user_id", "type", "data", "settings", "created_date"),
            indexes=("user_id", "type", "created_date"),
            json_columns=("settings",),
            datetime_columns=("created_date",),
        ),
        Collection(
            name="settings",
            columns=("key", "value", "updated_at"),
            key="key",
            autoincrement=False,
            json_columns=("value",),
            datetime_columns=("updated_at",),
        ),
    )
}
