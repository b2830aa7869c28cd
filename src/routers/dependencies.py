from typing import Optional

from fastapi import Header, HTTPException, Request, status

from src.db.core import NotFoundError
from src.logging_config import bind_user
from src.services.query_cache import QueryCache
from src.services.settlement import BillStateConflictError, SettlementStepError


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """
    The auth provider in front of the API resolves the session and forwards
    the user's id. Requests without it are rejected.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not authenticated")
    user_id = x_user_id.strip()
    # Must stay async: a sync dependency would bind the user in a copied worker context
    bind_user(user_id)
    return user_id


def get_query_cache(request: Request) -> QueryCache:
    return request.app.state.query_cache


def settlement_http_error(e: Exception) -> HTTPException:
    """Map settlement failures to HTTP errors; partial failures expose the applied steps"""
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, BillStateConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, SettlementStepError):
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": str(e),
                "operation": e.operation,
                "completed_steps": e.completed_steps,
                "failed_step": e.failed_step,
            },
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
