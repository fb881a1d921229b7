from __future__ import annotations

import hmac

from fastapi import HTTPException, Request, status

from opsconsole.core.config import get_settings
from opsconsole.core.logging import log_warning


async def require_api_key(request: Request) -> str:
    """Check the ``x-api-key`` header against the configured key.

    The API stays closed while no key is configured.
    """
    expected = get_settings().api_key
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="API access has not been configured",
        )
    api_key_value = request.headers.get("x-api-key")
    if not api_key_value:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="API key required")
    if not hmac.compare_digest(api_key_value.encode("utf-8"), expected.encode("utf-8")):
        forwarded = request.headers.get("x-forwarded-for")
        source_ip = forwarded.split(",")[0].strip() if forwarded else (
            request.client.host if request.client else "unknown"
        )
        log_warning("Rejected API key", path=request.url.path, ip=source_ip)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid API key")
    return api_key_value
