"""Acting principal resolution."""
from fastapi import Header
import structlog


async def get_principal(x_principal_id: int = Header(..., ge=1)) -> int:
    """
    Dependency returning the id of the user acting on the request.

    The authenticated front end forwards it in the X-Principal-Id header.
    """
    structlog.contextvars.bind_contextvars(principal=x_principal_id)
    return x_principal_id
