from fastapi import APIRouter, Depends, Query

from services.calendar_analytics.core.clients.graph import GraphAPIClient
from services.calendar_analytics.core.oauth import get_access_token
from services.calendar_analytics.models import DirectoryUserList
from services.common.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/directory", tags=["directory"])


@router.get("/users", response_model=DirectoryUserList)
async def search_directory_users(
    search: str = Query(..., min_length=1, description="Name or mail prefix"),
    top: int = Query(25, ge=1, le=100),
    access_token: str = Depends(get_access_token),
) -> DirectoryUserList:
    """Search the organization directory for people to invite."""
    async with GraphAPIClient(access_token) as client:
        users = await client.search_users(search, top=top)

    logger.info("Directory search", result_count=len(users))
    return DirectoryUserList(users=users, count=len(users))
