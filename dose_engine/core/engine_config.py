import os

from dose_engine.core.env import load_env

load_env()

TIMEZONE = os.getenv("TIMEZONE", "Asia/Kolkata")
DEFAULT_DOSE_TIME = os.getenv("DEFAULT_DOSE_TIME", "00:00")

# lead times in minutes, comma separated
DOSE_LEAD_MINUTES = os.getenv("DOSE_LEAD_MINUTES", "0")
APPOINTMENT_LEAD_MINUTES = os.getenv("APPOINTMENT_LEAD_MINUTES", "1440,60")

EXPANSION_CACHE_SIZE = int(os.getenv("EXPANSION_CACHE_SIZE", "512"))

PUSH_GATEWAY_URL = os.getenv("PUSH_GATEWAY_URL", "").rstrip("/")
PUSH_TIMEOUT_S = int(os.getenv("PUSH_TIMEOUT_S", "10"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", "")


def parse_minutes_list(raw: str) -> list[int]:
    out: list[int] = []
    for part in (raw or "").split(","):
        part = part.strip()
        if not part:
            continue
        n = int(part)
        if n < 0:
            raise ValueError(f"lead time must be >= 0 minutes, got {n}")
        out.append(n)
    return out
