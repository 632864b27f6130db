from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from slowapi import Limiter
from slowapi.util import get_remote_address
import structlog

from midatopay.api.services import Services
from midatopay.config import get_config
from midatopay.database.client import DatabaseClient

logger = structlog.get_logger()


def get_client_key(request: Request) -> str:
    """Get client identifier for rate limiting - uses IP address"""
    return get_remote_address(request)


def get_merchant_key(request: Request) -> str:
    """Rate limit payment creation per merchant when identified"""
    user_id = request.headers.get("user-id", "")
    if user_id:
        return user_id
    return get_remote_address(request)


limiter = Limiter(key_func=get_client_key, default_limits=[get_config().rate_limit])


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is starting up"
        )
    return services


def get_db(services: Services = Depends(get_services)) -> DatabaseClient:
    if services.db is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not configured"
        )
    return services.db


def get_user_id(user_id: Optional[str] = Header(default=None, alias="user-id")) -> str:
    """Caller identity as forwarded by the auth layer in front of this service"""
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing user-id header"
        )
    return user_id
