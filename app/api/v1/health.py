from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health", summary="Health Check", description="Check the health status of the application.")
async def health_check(request: Request):
    service = getattr(request.app.state, "search_service", None)
    return {"status": "healthy", "search_ready": service is not None}
