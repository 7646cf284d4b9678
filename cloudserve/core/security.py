import hmac

from fastapi import Security, HTTPException
from fastapi.security.api_key import APIKeyHeader
from starlette.status import HTTP_403_FORBIDDEN

from cloudserve.config import config

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_service_key(api_key: str = Security(api_key_header)):
    """
    Checks the service-role key sent by trusted backend callers.
    Usage:
    @router.post("/internal/endpoint", dependencies=[Depends(verify_service_key)])
    """
    if not config.SERVICE_ROLE_KEY or not api_key or not hmac.compare_digest(api_key, config.SERVICE_ROLE_KEY):
        raise HTTPException(
            status_code=HTTP_403_FORBIDDEN,
            detail="Could not validate API key"
        )
    return api_key
