import secrets

from fastapi import Depends, HTTPException, Request
from fastapi.security import APIKeyHeader

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(request: Request, x_api_key: str | None = Depends(api_key_header)) -> None:
    """Reject requests whose X-API-Key header does not match APP_API_KEY.

    Raises:
        HTTPException: 401 if the header is missing or wrong.
    """
    expected_key = request.app.state.helper_config.get_string_val("APP_API_KEY")
    if not x_api_key or not secrets.compare_digest(x_api_key, expected_key):
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
