"""Record models, one dataclass per collection."""

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, Optional, Type, TypeVar

ROLE_ADMIN = "admin"
ROLE_VIEWER = "viewer"
CODE_ROLES = (ROLE_ADMIN, ROLE_VIEWER)

R = TypeVar("R", bound="Record")


class Record:
    """Mixin converting between dataclasses and store records (plain dicts)."""

    @classmethod
    def from_record(cls: Type[R], record: Dict[str, Any]) -> R:
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in record.items() if k in names})

    def to_record(self) -> Dict[str, Any]:
        data = asdict(self)
        if data.get("id") is None:
            data.pop("id", None)
        return data


@dataclass
class User(Record):
    name: str
    email: str
    phone: Optional[str] = None
    product: str = ""
    purchase_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    amount: float = 0
    status: str = "pending"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class Product(Record):
    name: Dict[str, str] = field(default_factory=dict)
    description: Dict[str, str] = field(default_factory=dict)
    price: float = 0
    img: str = ""
    category: str = ""
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class Subscription(Record):
    user_id: int
    tier: str = "Basic"
    start_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class AccessCode(Record):
    user_id: int
    code: str
    type: str
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class Purchase(Record):
    user_id: int
    product_id: int
    amount: float = 0
    purchase_date: Optional[datetime] = None
    status: str = "completed"
    payment_method: str = ""
    created_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class QRCode(Record):
    user_id: Optional[int] = None
    type: str = "text"
    data: str = ""
    settings: Dict[str, Any] = field(default_factory=dict)
    created_date: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class Setting(Record):
    key: str
    value: Any = None
    updated_at: Optional[datetime] = None
