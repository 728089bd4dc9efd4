"""Shared rate limiter instance for use across route files."""

from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request

from florist_ledger.core.config import settings
from florist_ledger.core.identity import OPERATOR_EMAIL_HEADER, OPERATOR_ID_HEADER


def get_operator_or_ip(request: Request) -> str:
    """Rate limit by operator if identified, else by IP."""
    operator = request.headers.get(OPERATOR_ID_HEADER) or request.headers.get(OPERATOR_EMAIL_HEADER)
    if operator:
        return f"operator:{operator}"
    return get_remote_address(request)


limiter = Limiter(key_func=get_operator_or_ip, enabled=settings.rate_limit_enabled)
