from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel, Field

from app.core.rate_limit import rate_limit
from app.core.security import check_api_key
from app.schemas import SearchReply
from app.services.search_service import SearchService

router = APIRouter()


class SearchRequest(BaseModel):
    message: str = Field(default="", max_length=2000)
    user_key: str = Field(min_length=1, max_length=200)
    requester_email: str | None = Field(default=None, max_length=320)


class MoreRequest(BaseModel):
    user_key: str = Field(min_length=1, max_length=200)


def get_search_service(request: Request) -> SearchService:
    service = getattr(request.app.state, "search_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Search service is not ready.",
        )
    return service


@router.post("/search", response_model=SearchReply)
@rate_limit()
async def search(
    request: Request,
    payload: SearchRequest,
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    service: SearchService = Depends(get_search_service),
):
    _ = request
    check_api_key(x_api_key)
    return await service.search(payload.message, payload.user_key, requester_email=payload.requester_email)


@router.post("/search/more", response_model=SearchReply)
@rate_limit()
async def search_more(
    request: Request,
    payload: MoreRequest,
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    service: SearchService = Depends(get_search_service),
):
    _ = request
    check_api_key(x_api_key)
    return await service.show_more(payload.user_key)
