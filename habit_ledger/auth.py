"""
API key check for the habit ledger API.
Teachers and students reach the ledger through a trusted front end that sends
the shared key in the X-API-Key header; only the health check is public.
"""
from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader
import os

from habit_ledger.constants import DEFAULT_API_KEY

API_KEY = os.getenv("HABIT_LEDGER_API_KEY", DEFAULT_API_KEY)

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(api_key: str = Security(api_key_header)) -> str:
    """Reject requests whose key is missing or does not match HABIT_LEDGER_API_KEY"""
    if not api_key or api_key != API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API Key"
        )
    return api_key
