"""Activity feed — the append-only event stream, newest first."""

from fastapi import APIRouter, Depends, Query

from clawbuild.database import Database
from clawbuild.dependencies import get_database
from clawbuild.repositories import ActivityRepository
from clawbuild.schemas import ActivityResponse, FeedResponse

router = APIRouter(prefix="/api/feed", tags=["feed"])


@router.get("", response_model=FeedResponse)
async def get_feed(
    type: str | None = Query(None, description="Filter by activity type, e.g. 'idea:approved'"),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    database: Database = Depends(get_database),
):
    async with database.session() as db:
        entries, total = await ActivityRepository(db).list_recent(
            offset=offset, limit=limit, type=type
        )
    return FeedResponse(
        items=[ActivityResponse.model_validate(e) for e in entries],
        total=total,
        offset=offset,
        limit=limit,
    )
