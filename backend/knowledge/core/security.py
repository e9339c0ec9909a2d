"""Bearer token guard for service-to-service calls."""
from __future__ import annotations

import logging
import secrets

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import settings

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def require_service_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> None:
    """Reject requests without the configured service token.

    When ``API_TOKEN`` is unset the check is disabled, which is how local
    development and the test suite run.
    """

    expected = settings.API_TOKEN
    if not expected:
        return
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    if not secrets.compare_digest(credentials.credentials.encode(), expected.encode()):
        logger.warning("Rejected request with an invalid service token")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
