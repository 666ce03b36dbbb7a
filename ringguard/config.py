"""
Configuration module for RingGuard.

Centralizes all configuration with environment variable support.
Values are read once at import time; tests and embedders pass explicit
arguments to the component constructors instead of mutating these.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("RINGGUARD_ENV", "dev")  # dev|stage|prod

LOG_LEVEL = os.getenv("RINGGUARD_LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("RINGGUARD_LOG_JSON", "1").lower() in ("1", "true", "yes")
LOG_FILE = os.getenv("RINGGUARD_LOG_FILE") or None

# Ledger storage
LEDGER_BACKEND = os.getenv("LEDGER_BACKEND", "memory")  # memory|sqlite
LEDGER_DB_PATH = os.getenv("LEDGER_DB_PATH", "data/ringguard_ledger.db")

# Largest matrix the service will allocate (size * size ciphertexts)
MATRIX_MAX_SIZE = int(os.getenv("MATRIX_MAX_SIZE", "256"))

# Reveal protocol: pending requests older than this are stale (0 = never)
REVEAL_REQUEST_TTL_SECONDS = int(os.getenv("REVEAL_REQUEST_TTL_SECONDS", "3600"))

# Decryption oracle
ORACLE_BACKEND = os.getenv("ORACLE_BACKEND", "local")  # local|http
ORACLE_URL = os.getenv("ORACLE_URL", "")
ORACLE_CALLBACK_URL = os.getenv("ORACLE_CALLBACK_URL", "")
ORACLE_TIMEOUT_SECONDS = float(os.getenv("ORACLE_TIMEOUT_SECONDS", "5"))
ORACLE_TRUST_STORE_PATH = os.getenv("ORACLE_TRUST_STORE_PATH", "trust/oracle_trust_store.json")
ORACLE_KEY_PATH = os.getenv("ORACLE_KEY_PATH", "secrets/oracle_signing_key.json")
ORACLE_KID = os.getenv("ORACLE_KID", "oracle-local-ed25519")


# ============================================================
# Loaders
# ============================================================

def load_json(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def load_trust_store(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load the oracle trust store.

    Format: ``{"oracle_keys": {"<kid>": "<public key, base64>"}}``
    """
    store = load_json(path or ORACLE_TRUST_STORE_PATH)
    if not isinstance(store.get("oracle_keys"), dict):
        raise ValueError("trust store must contain an 'oracle_keys' object")
    return store


def request_ttl() -> Optional[int]:
    """Configured reveal-request TTL, or None when requests never expire."""
    return REVEAL_REQUEST_TTL_SECONDS if REVEAL_REQUEST_TTL_SECONDS > 0 else None


def validate_config() -> Dict[str, bool]:
    """
    Check that the files the configured backends need exist.
    Returns dict of name -> exists.
    """
    paths = {}
    if ORACLE_BACKEND == "http":
        paths["oracle_trust_store"] = ORACLE_TRUST_STORE_PATH
    if LEDGER_BACKEND == "sqlite":
        paths["ledger_db_dir"] = str(Path(LEDGER_DB_PATH).parent)
    return {name: Path(path).exists() for name, path in paths.items()}


# ============================================================
# Feature Flags
# ============================================================

def is_production() -> bool:
    return ENV == "prod"


def is_debug() -> bool:
    return os.getenv("RINGGUARD_DEBUG", "").lower() in ("1", "true", "yes")
