from fastapi import APIRouter, Depends, HTTPException, status

from app.core.errors import DependencyFailure
from app.core.security import get_human_principal
from app.schemas.admin import GlobalPolicyOut, GlobalPolicyPatchRequest
from app.services.policy import read_global_policy, update_global_policy
from app.services.repository import (
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)

router = APIRouter()


@router.get("/settings", response_model=GlobalPolicyOut)
async def get_settings_row(
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> GlobalPolicyOut:
    try:
        principal.require_scopes({"settings:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        policy = await read_global_policy(repository)
    except DependencyFailure as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.to_detail()) from exc

    return GlobalPolicyOut(**policy.to_dict())


@router.patch("/settings", response_model=GlobalPolicyOut)
async def patch_settings_row(
    payload: GlobalPolicyPatchRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> GlobalPolicyOut:
    try:
        principal.require_scopes({"settings:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        policy = await update_global_policy(repository, payload.model_dump(exclude_none=True))
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except DependencyFailure as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.to_detail()) from exc

    return GlobalPolicyOut(**policy.to_dict())
