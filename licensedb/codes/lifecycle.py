"""Issuing, retiring and confirming per-user access codes."""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from ..errors import CodeGenerationExhausted, PersistenceVerificationFailed
from ..models import CODE_ROLES, ROLE_ADMIN, ROLE_VIEWER, AccessCode
from ..retry import Sleep, poll_until
from ..store import SQLiteStore
from .generator import generate_code

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_SETTLE_DELAY = 0.2
DEFAULT_RETRY_DELAY = 0.3


@dataclass(frozen=True)
class GeneratedCodes:
    admin_code: str
    viewer_code: str


class CodeLifecycleManager:
    """Keeps exactly one active admin and one active viewer code per user.

    Regeneration is a sequence of separate store transactions: retire the
    active codes, pick unique candidates, insert, then read the new codes
    back. Concurrent regenerations for the same user are not coordinated.
    """

    def __init__(
        self,
        store: SQLiteStore,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        allow_duplicates: bool = False,
        generator: Callable[[str], str] = generate_code,
        sleep: Optional[Sleep] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.store = store
        self.max_attempts = max_attempts
        self.settle_delay = settle_delay
        self.retry_delay = retry_delay
        self.allow_duplicates = allow_duplicates
        self._generate = generator
        self._sleep = sleep

    async def get_active_codes(self, user_id: int) -> Dict[str, str]:
        """Map of role to active code string for a user."""
        active = await self.store.get_user_codes(user_id)
        return {c.type: c.code for c in active}

    async def deactivate_codes(self, user_id: int) -> int:
        """Soft-delete every active code of a user; returns how many were retired."""
        retired = 0
        for code in await self.store.get_user_codes(user_id):
            await self.store.update_code(code.id, is_active=False)
            retired += 1
        if retired:
            logger.info(f"Deactivated {retired} codes for user {user_id}")
        return retired

    async def _unique_code(self, role: str) -> str:
        candidate = ""
        for attempt in range(1, self.max_attempts + 1):
            candidate = self._generate(role)
            if await self.store.get_code(candidate) is None:
                return candidate
            logger.warning(
                f"Generated {role} code collides with an existing code "
                f"(attempt {attempt}/{self.max_attempts})"
            )
        if self.allow_duplicates:
            logger.error(
                f"No unique {role} code after {self.max_attempts} attempts, "
                f"proceeding with possibly duplicate candidate"
            )
            return candidate
        raise CodeGenerationExhausted(role, self.max_attempts)

    async def _read_back(self, code: str, code_id: int) -> Optional[AccessCode]:
        record = await self.store.get_code(code)
        if record is None:
            record = await self.store.get_code_by_id(code_id)
        return record

    async def regenerate_codes(self, user_id: int) -> GeneratedCodes:
        """Retire the user's active codes and issue a fresh admin/viewer pair.

        Raises:
            CodeGenerationExhausted: no unique candidate within the attempt budget.
            PersistenceVerificationFailed: the new codes could not be read back.
        """
        await self.deactivate_codes(user_id)

        candidates = {role: await self._unique_code(role) for role in CODE_ROLES}

        written: Dict[str, Tuple[str, int]] = {}
        for role in CODE_ROLES:
            code_id = await self.store.add_code(
                user_id=user_id,
                code=candidates[role],
                type=role,
                is_active=True,
            )
            written[role] = (candidates[role], code_id)

        found: Dict[str, Optional[AccessCode]] = {role: None for role in CODE_ROLES}

        async def probe() -> bool:
            for role, (code, code_id) in written.items():
                if found[role] is None:
                    found[role] = await self._read_back(code, code_id)
            return all(found.values())

        confirmed = await poll_until(
            probe,
            delays=(self.settle_delay, self.retry_delay),
            sleep=self._sleep,
            label=f"Code read-back for user {user_id}",
        )

        admin_code, admin_id = written[ROLE_ADMIN]
        viewer_code, viewer_id = written[ROLE_VIEWER]
        if not confirmed:
            logger.error(
                f"Code verification failed after retry for user {user_id}: "
                f"admin={admin_code} (ID: {admin_id}, found: {found[ROLE_ADMIN] is not None}), "
                f"viewer={viewer_code} (ID: {viewer_id}, found: {found[ROLE_VIEWER] is not None})"
            )
            raise PersistenceVerificationFailed(
                admin_code,
                viewer_code,
                admin_found=found[ROLE_ADMIN] is not None,
                viewer_found=found[ROLE_VIEWER] is not None,
            )

        logger.info(
            f"Codes saved and verified for user {user_id}: "
            f"admin={admin_code} (ID: {admin_id}), viewer={viewer_code} (ID: {viewer_id})"
        )
        return GeneratedCodes(admin_code=admin_code, viewer_code=viewer_code)

