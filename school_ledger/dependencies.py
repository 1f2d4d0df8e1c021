"""
School Ledger - FastAPI Dependencies

Shared dependencies for database sessions and the acting user.

Authentication happens upstream (the ERP gateway); by the time a request
reaches the ledger the user id has been placed in the X-User-Id header.
The ledger treats it as an opaque string and records it on closings,
reopenings and journal entries.
"""

from typing import Optional

from fastapi import Header

from school_ledger.utils.error_handling import AuthenticationException


async def get_current_actor_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> str:
    """
    Get the id of the user performing the request.

    Raises:
        AuthenticationException: If no user id was forwarded
    """
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationException("Not authenticated")
    return x_user_id.strip()
