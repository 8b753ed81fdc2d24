import hmac
import logging
import os

from fastapi import Header, HTTPException

from dose_engine.core.env import load_env

load_env()

log = logging.getLogger("dose_engine.security")


def verify_internal_service(x_internal_key: str = Header(...)):
    """Reminder replans change what a patient gets notified about; only sibling services may call them."""
    # read per call, not at import
    secret = os.getenv("INTERNAL_SERVICE_SECRET")

    if not secret:
        log.error("security.secret.missing")
        raise HTTPException(
            status_code=500,
            detail="Internal service secret not configured."
        )

    if not hmac.compare_digest(x_internal_key.encode(), secret.encode()):
        log.warning("security.key.rejected")
        raise HTTPException(
            status_code=401,
            detail="Unauthorized service call."
        )
