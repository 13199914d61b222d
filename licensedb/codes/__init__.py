"""Access code generation, lifecycle and verification."""

from .generator import generate_code
from .lifecycle import CodeLifecycleManager, GeneratedCodes
from .verifier import (
    CodePair,
    CodeVerifier,
    Expired,
    IdentityPayload,
    Invalid,
    Success,
    UserNotFound,
    VerificationResult,
    derive_tier,
)

__all__ = [
    "CodeLifecycleManager",
    "CodePair",
    "CodeVerifier",
    "Expired",
    "GeneratedCodes",
    "IdentityPayload",
    "Invalid",
    "Success",
    "UserNotFound",
    "VerificationResult",
    "derive_tier",
    "generate_code",
]
