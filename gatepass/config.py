import base64
import os
from dataclasses import dataclass, field
from typing import List

KEY_SIZE = 32


def load_key(value: str) -> bytes:
    """Decode a base64url QR key and check it is a 256-bit AES key.

    Rotating this key invalidates every token issued under the old one that
    has not been scanned yet.
    """
    if not value:
        raise ValueError("GATEPASS_QR_KEY is not set")
    value = value.strip()
    padded = value + "=" * (-len(value) % 4)
    try:
        key = base64.b64decode(padded.encode("ascii"), altchars=b"-_", validate=True)
    except (ValueError, UnicodeEncodeError) as e:
        raise ValueError(f"GATEPASS_QR_KEY is not valid base64url: {e}") from e
    if len(key) != KEY_SIZE:
        raise ValueError(f"GATEPASS_QR_KEY must decode to {KEY_SIZE} bytes, got {len(key)}")
    return key


def _split(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    database_url: str = "sqlite:///./gatepass.db"
    qr_key: bytes = b""
    scan_timeout: float = 2.0
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:8081"])
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("GATEPASS_DATABASE_URL", cls.database_url),
            qr_key=load_key(os.getenv("GATEPASS_QR_KEY", "")),
            scan_timeout=float(os.getenv("GATEPASS_SCAN_TIMEOUT", cls.scan_timeout)),
            cors_origins=_split(os.getenv("GATEPASS_CORS_ORIGINS", "http://localhost:8081")),
            log_level=os.getenv("GATEPASS_LOG_LEVEL", cls.log_level).upper(),
        )
