"""Access code generation."""

import random
import secrets
import string
import time
from typing import Optional

from ..models import ROLE_ADMIN, ROLE_VIEWER

BASE36 = string.digits + string.ascii_uppercase

CODE_PREFIXES = {
    ROLE_ADMIN: "ADM",
    ROLE_VIEWER: "VWR",
}

_system_random = secrets.SystemRandom()


def to_base36(number: int) -> str:
    """Encode a non-negative integer in upper-case base 36."""
    if number < 0:
        raise ValueError("number must be non-negative")
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(BASE36[rem])
    return "".join(reversed(digits))


def generate_code(
    role: str = ROLE_ADMIN,
    timestamp_ms: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> str:
    """Generate a shareable code, e.g. ``ADM-K3F9Q2ZX``.

    The 8 characters after the prefix are the last 4 base-36 digits of the
    millisecond timestamp followed by 4 random base-36 digits. Codes are not
    guaranteed unique; callers check the store.
    """
    try:
        prefix = CODE_PREFIXES[role]
    except KeyError:
        raise ValueError(f"Unknown code role: {role!r}") from None
    if timestamp_ms is None:
        timestamp_ms = time.time_ns() // 1_000_000
    rng = rng or _system_random
    time_part = to_base36(timestamp_ms)[-4:].rjust(4, "0")
    random_part = "".join(rng.choice(BASE36) for _ in range(4))
    return f"{prefix}-{time_part}{random_part}"
