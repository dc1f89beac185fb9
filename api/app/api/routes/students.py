from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, Response, status
from starlette.datastructures import UploadFile

from app.core.auth import Principal
from app.core.errors import ClientInputError, DependencyFailure, NotFoundError
from app.core.security import get_human_principal, get_student_principal
from app.schemas.students import (
    FteStatusOut,
    InternshipStatusOut,
    PlacedStatusOut,
    PlacedStatusSetOut,
    ProfilePicOut,
    ProfilePicRequest,
    StudentOut,
)
from app.services import profiles
from app.services.repository import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)
from app.services.status import Dimension, build_status_report, lookup_status
from app.services.storage import Attachment, get_storage

router = APIRouter()


def _require(principal: Principal, scopes: set[str]) -> None:
    try:
        principal.require_scopes(scopes)
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc


@router.get("/me", response_model=StudentOut)
async def find_me(
    principal: Principal = Depends(get_student_principal),
    repository=Depends(get_repository),
) -> StudentOut:
    _require(principal, {"profile:read"})
    try:
        row = await profiles.get_own_profile(repository, principal.username)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.to_detail()) from exc
    return StudentOut(**row)


@router.post("/submit-for-approval", response_model=StudentOut, status_code=status.HTTP_201_CREATED)
async def submit_for_approval(
    body: Any = Body(default=None),
    principal: Principal = Depends(get_student_principal),
    repository=Depends(get_repository),
) -> StudentOut:
    _require(principal, {"profile:write"})
    try:
        row = await profiles.submit_for_approval(
            repository,
            username=principal.username,
            user_id=principal.subject,
            body=body,
        )
    except ClientInputError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.to_detail()) from exc
    except DependencyFailure as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.to_detail()) from exc
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return StudentOut(**row)


@router.put("/modify", response_model=StudentOut)
async def modify_multiple(
    request: Request,
    principal: Principal = Depends(get_student_principal),
    repository=Depends(get_repository),
    storage=Depends(get_storage),
):
    _require(principal, {"profile:write"})
    body, files = await _read_modify_request(request)
    try:
        row = await profiles.modify_profile(
            repository,
            storage,
            username=principal.username,
            body=body,
            files=files,
        )
    except ClientInputError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.to_detail()) from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.to_detail()) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    if row is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return StudentOut(**row)


@router.get("/placed-status", response_model=PlacedStatusOut)
async def get_placed_status(
    roll: str | None = Query(default=None, min_length=1),
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> PlacedStatusOut:
    return PlacedStatusOut(placed=await _status(Dimension.PLACEMENT, roll, principal, repository))


@router.get("/intern-status-2", response_model=InternshipStatusOut)
async def get_intern_status_2(
    roll: str | None = Query(default=None, min_length=1),
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> InternshipStatusOut:
    return InternshipStatusOut(internship=await _status(Dimension.INTERN_2, roll, principal, repository))


@router.get("/intern-status-6", response_model=InternshipStatusOut)
async def get_intern_status_6(
    roll: str | None = Query(default=None, min_length=1),
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> InternshipStatusOut:
    return InternshipStatusOut(internship=await _status(Dimension.INTERN_6, roll, principal, repository))


@router.get("/fte-status", response_model=FteStatusOut)
async def get_fte_status(
    roll: str | None = Query(default=None, min_length=1),
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> FteStatusOut:
    return FteStatusOut(fte=await _status(Dimension.FTE, roll, principal, repository))


@router.put("/set-placed-status", response_model=PlacedStatusSetOut)
async def set_placed_status(
    roll: str | None = Query(default=None),
    placed_status: str | None = Query(default=None),
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> PlacedStatusSetOut:
    _require(principal, {"placement:write"})
    try:
        result = await profiles.set_placed_status(repository, roll=roll, placed_status=placed_status)
    except ClientInputError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.to_detail()) from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.to_detail()) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return PlacedStatusSetOut(placed_status=result.value)


@router.post("/profile-pic-url", response_model=ProfilePicOut)
async def get_profile_pic_url(
    payload: ProfilePicRequest,
    repository=Depends(get_repository),
) -> ProfilePicOut:
    try:
        url = await profiles.get_profile_pic_url(repository, payload.email)
    except ClientInputError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.to_detail()) from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.to_detail()) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return ProfilePicOut(profile_pic_url=url)


async def _status(dimension: Dimension, roll: str | None, principal: Principal, repository):
    _require(principal, {"status:read"})
    try:
        if roll:
            return await lookup_status(repository, dimension, roll)
        return await build_status_report(repository, dimension)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.to_detail()) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


async def _read_modify_request(request: Request) -> tuple[Any, dict[str, Attachment]]:
    """Accepts a JSON object or multipart form; form file parts become attachments."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        form = await request.form()
        body: dict[str, Any] = {}
        files: dict[str, Attachment] = {}
        for name, value in form.multi_items():
            if isinstance(value, UploadFile):
                files[name] = Attachment(
                    filename=value.filename or name,
                    content_type=value.content_type,
                    data=await value.read(),
                )
            else:
                body[name] = value
        return body, files

    try:
        body = await request.json()
    except ValueError:
        body = None
    return body, {}
