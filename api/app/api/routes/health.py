from fastapi import APIRouter, Depends, HTTPException, status

from app.core.errors import DependencyFailure
from app.services.policy import read_global_policy
from app.services.repository import get_repository

router = APIRouter()


@router.get("/")
async def root() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(repository=Depends(get_repository)) -> dict[str, str]:
    try:
        await read_global_policy(repository)
    except DependencyFailure as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.to_detail()) from exc
    return {"status": "ok", "settings": "loaded"}
