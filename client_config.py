"""
Configuration for the Ghost Odds client
"""
from typing import Dict, Any
import os


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    return int(value)


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    return float(value)


# Relayer / decryption configuration
RELAYER_CONFIG: Dict[str, Any] = {
    "url": os.getenv("GHOST_ODDS_RELAYER_URL", "http://localhost:3000"),
    "timeout": _env_float("GHOST_ODDS_RELAYER_TIMEOUT", 30.0),

    # Signature domain
    "domain_name": "Decryption",
    "domain_version": "1",
    "chain_id": os.getenv("GHOST_ODDS_CHAIN_ID", "xian-local"),

    # Authorization window (original UI asked for 7 days)
    "decrypt_duration_seconds": _env_int("GHOST_ODDS_DECRYPT_DURATION", 7 * 24 * 60 * 60),
}

# Deployed contract names
CONTRACT_CONFIG: Dict[str, Any] = {
    "ledger": os.getenv("GHOST_ODDS_LEDGER_CONTRACT", "con_ghost_odds"),
    "executor": os.getenv("GHOST_ODDS_EXECUTOR_CONTRACT", "con_fhe_executor"),
}

# Mirrors the ledger's economics for local previews
GAME_CONFIG: Dict[str, Any] = {
    "points_per_unit": 10000,
    "unit_scale": 100000000,
    "round_reward": 1000,
}
