from fastapi import APIRouter

from .indexing import router as indexing_router

router = APIRouter(prefix="/v1")
router.include_router(indexing_router)


@router.get(
    "/health",
    summary="API Health Check",
    description="Simple health check endpoint for monitoring and container orchestration.",
    responses={
        200: {"description": "API is healthy and responding"},
    },
)
async def health_check():
    """Health check endpoint for Docker health checks."""
    return {"status": "healthy", "message": "Dataroom Indexing API is running"}
