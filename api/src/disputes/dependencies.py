"""FastAPI dependencies for disputes."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import DisputeService


async def get_dispute_service(request: Request) -> DisputeService:
    """Get dispute service from app state."""
    service = getattr(request.app.state, "dispute_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Dispute service not available",
        )
    return service


DisputeServiceDep = Annotated[DisputeService, Depends(get_dispute_service)]
