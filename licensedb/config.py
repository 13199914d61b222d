"""Configuration loading and validation."""

import os
import sys
from dataclasses import dataclass

from dotenv import find_dotenv, load_dotenv


@dataclass
class Config:
    """Store and code subsystem configuration."""
    data_file: str
    log_level: str
    code_validity_days: int
    max_code_attempts: int
    verify_settle_delay: float
    verify_retry_delay: float
    allow_duplicate_codes: bool


def _parse_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config() -> Config:
    """Load and validate configuration from environment variables."""
    load_dotenv(find_dotenv(usecwd=True))

    data_file = os.getenv("DATA_FILE", "licensedb.db")
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    validity_str = os.getenv("CODE_VALIDITY_DAYS", "180")
    attempts_str = os.getenv("MAX_CODE_ATTEMPTS", "10")
    settle_str = os.getenv("VERIFY_SETTLE_DELAY", "0.2")
    retry_str = os.getenv("VERIFY_RETRY_DELAY", "0.3")
    allow_duplicates = _parse_flag(os.getenv("ALLOW_DUPLICATE_CODES", "0"))

    try:
        code_validity_days = int(validity_str)
        max_code_attempts = int(attempts_str)
    except ValueError:
        sys.stderr.write("CODE_VALIDITY_DAYS and MAX_CODE_ATTEMPTS must be integers.\n")
        sys.exit(1)

    try:
        verify_settle_delay = float(settle_str)
        verify_retry_delay = float(retry_str)
    except ValueError:
        sys.stderr.write("VERIFY_SETTLE_DELAY and VERIFY_RETRY_DELAY must be numbers.\n")
        sys.exit(1)

    if max_code_attempts < 1:
        sys.stderr.write("MAX_CODE_ATTEMPTS must be at least 1.\n")
        sys.exit(1)

    return Config(
        data_file=data_file,
        log_level=log_level,
        code_validity_days=code_validity_days,
        max_code_attempts=max_code_attempts,
        verify_settle_delay=verify_settle_delay,
        verify_retry_delay=verify_retry_delay,
        allow_duplicate_codes=allow_duplicates,
    )
