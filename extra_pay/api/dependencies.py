"""FastAPI dependencies for tenant scope and actor attribution."""
from fastapi import Header, HTTPException, Request, status

from extra_pay.services.event_store import Actor


def get_district_id(x_district_id: str = Header(None)) -> int:
    """Extract the caller's district from the X-District-ID header."""
    if not x_district_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-District-ID header is required",
        )
    try:
        return int(x_district_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-District-ID format",
        )


def get_actor(
    http_request: Request,
    x_user_id: str = Header(None),
    x_user_role: str = Header(None)
) -> Actor:
    """Who is acting and from where, for the audit trail. Required on every write."""
    if not x_user_id or not x_user_role:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-ID and X-User-Role headers are required",
        )
    return Actor(
        id=x_user_id,
        role=x_user_role,
        ip_address=http_request.client.host if http_request.client else None,
        user_agent=http_request.headers.get("user-agent")
    )
