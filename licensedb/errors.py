"""Exceptions raised by the store and the code subsystem."""

from typing import Optional


class LicenseDBError(Exception):
    pass


class StoreNotInitialized(LicenseDBError, RuntimeError):
    def __init__(self) -> None:
        super().__init__("Store not initialized. Call initialize() first.")


class UnknownCollection(LicenseDBError, KeyError):
    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Unknown collection: {self.name}"


class RecordNotFound(LicenseDBError, LookupError):
    def __init__(self, collection: str, key) -> None:
        super().__init__(f"{collection} record {key!r} not found")
        self.collection = collection
        self.key = key


class CodeGenerationExhausted(LicenseDBError):
    """No unique candidate code was found within the attempt budget."""

    def __init__(self, role: str, attempts: int) -> None:
        super().__init__(f"No unique {role} code after {attempts} attempts")
        self.role = role
        self.attempts = attempts


class PersistenceVerificationFailed(LicenseDBError):
    """Newly written codes could not be read back from the store.

    The writes were issued and are not rolled back; the caller is expected
    to regenerate again.
    """

    def __init__(
        self,
        admin_code: str,
        viewer_code: str,
        admin_found: bool = False,
        viewer_found: bool = False,
        detail: Optional[str] = None,
    ) -> None:
        message = detail or "Failed to save codes to database - verification failed"
        super().__init__(message)
        self.admin_code = admin_code
        self.viewer_code = viewer_code
        self.admin_found = admin_found
        self.viewer_found = viewer_found
