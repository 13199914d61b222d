"""Verification of presented access codes."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, ClassVar, Dict, Optional, Union

from ..models import ROLE_ADMIN, ROLE_VIEWER
from ..store import SQLiteStore, utcnow

logger = logging.getLogger(__name__)

DEFAULT_VALIDITY_DAYS = 180

TIER_PRO_6 = "Pro-6"
TIER_PRO_12 = "Pro-12"
TIER_BASIC_3 = "Basic-3"

# "Yearly" and its Arabic equivalent
YEARLY_TOKENS = ("Yearly", "سنوي")


def derive_tier(product: Optional[str]) -> str:
    """Infer the subscription tier from a free-text product label.

    Case-sensitive substring match, first hit wins: a "6" anywhere means
    Pro-6, then a yearly token means Pro-12, anything else is Basic-3.
    """
    product = product or ""
    if "6" in product:
        return TIER_PRO_6
    if any(token in product for token in YEARLY_TOKENS):
        return TIER_PRO_12
    return TIER_BASIC_3


@dataclass(frozen=True)
class Invalid:
    """Unknown or inactive code, or a lookup that failed (message ``ERROR``)."""
    message: str = "INVALID"
    ok: ClassVar[bool] = False

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": self.ok, "message": self.message}


@dataclass(frozen=True)
class UserNotFound:
    message: ClassVar[str] = "USER_NOT_FOUND"
    ok: ClassVar[bool] = False

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": self.ok, "message": self.message}


@dataclass(frozen=True)
class Expired:
    message: ClassVar[str] = "EXPIRED"
    ok: ClassVar[bool] = False

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": self.ok, "message": self.message}


@dataclass(frozen=True)
class CodePair:
    admin: str = ""
    viewer: str = ""


@dataclass(frozen=True)
class IdentityPayload:
    user_id: int
    name: str
    email: str
    product: str


@dataclass(frozen=True)
class Success:
    role: str
    until: datetime
    tier: str
    codes: CodePair = field(default_factory=CodePair)
    payload: Optional[IdentityPayload] = None
    message: ClassVar[str] = "OK"
    ok: ClassVar[bool] = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "role": self.role,
            "until": self.until.isoformat(),
            "tier": self.tier,
            "codes": {"admin": self.codes.admin, "viewer": self.codes.viewer},
            "payload": {
                "userId": self.payload.user_id,
                "name": self.payload.name,
                "email": self.payload.email,
                "product": self.payload.product,
            } if self.payload else None,
        }


VerificationResult = Union[Success, Invalid, UserNotFound, Expired]


class CodeVerifier:
    """Resolves a presented code to a role and tier decision.

    Never raises: any failure during lookup is logged and reported as
    ``Invalid(message="ERROR")``.
    """

    def __init__(
        self,
        store: SQLiteStore,
        validity_days: int = DEFAULT_VALIDITY_DAYS,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.validity_days = validity_days
        self._clock = clock or utcnow

    async def verify(self, code: str) -> VerificationResult:
        try:
            return await self._verify(code)
        except Exception as e:
            logger.error(f"Error verifying code: {type(e).__name__}: {e}")
            return Invalid(message="ERROR")

    async def _verify(self, code: str) -> VerificationResult:
        if not code:
            return Invalid()

        record = await self.store.get_code(code)
        if record is None or not record.is_active:
            logger.debug(f"Rejected code {code}: unknown or inactive")
            return Invalid()

        user = await self.store.get_user(record.user_id)
        if user is None:
            logger.warning(f"Code {code} references missing user {record.user_id}")
            return UserNotFound()

        now = self._clock()
        if user.expiry_date is not None and user.expiry_date < now:
            return Expired()

        active = await self.store.get_user_codes(record.user_id)
        admin = next((c.code for c in active if c.type == ROLE_ADMIN), "")
        viewer = next((c.code for c in active if c.type == ROLE_VIEWER), "")

        role = ROLE_ADMIN if record.type == ROLE_ADMIN else ROLE_VIEWER
        until = user.expiry_date or now + timedelta(days=self.validity_days)

        return Success(
            role=role,
            until=until,
            tier=derive_tier(user.product),
            codes=CodePair(admin=admin, viewer=viewer),
            payload=IdentityPayload(
                user_id=user.id,
                name=user.name,
                email=user.email,
                product=user.product,
            ),
        )
