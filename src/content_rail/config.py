"""
Host Configuration

Wires storage, authentication and the HTTP surface. The ledger engine itself
takes no configuration.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional


def _parse_api_keys(raw: str) -> Dict[str, str]:
    """Parse ``key:identity,key:identity`` into a key -> identity map."""
    keys: Dict[str, str] = {}
    for pair in raw.split(","):
        pair = pair.strip()
        if not pair:
            continue
        key, sep, identity = pair.partition(":")
        if not sep or not key or not identity:
            raise ValueError(f"Invalid RAIL_API_KEYS entry: {pair!r}")
        keys[key] = identity
    return keys


@dataclass
class RailConfig:
    """Configuration for the rail host."""
    database_url: str = "sqlite:///content_rail.db"
    api_keys: Dict[str, str] = field(default_factory=dict)
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    json_logs: bool = False
    event_signing_key: Optional[bytes] = None
    port: int = 8000

    @classmethod
    def from_env(cls) -> "RailConfig":
        signing_key_hex = os.environ.get("EVENT_SIGNING_KEY")
        return cls(
            database_url=os.environ.get("DATABASE_URL", "sqlite:///content_rail.db"),
            api_keys=_parse_api_keys(os.environ.get("RAIL_API_KEYS", "")),
            cors_origins=[o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()],
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            json_logs=os.environ.get("LOG_JSON", "false").lower() == "true",
            event_signing_key=bytes.fromhex(signing_key_hex) if signing_key_hex else None,
            port=int(os.environ.get("PORT", 8000)),
        )

    def identity_for_key(self, api_key: str) -> Optional[str]:
        return self.api_keys.get(api_key)
