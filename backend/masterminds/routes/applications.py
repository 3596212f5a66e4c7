"""
MasterMinds Backend — Application Route Handlers
=================================================

What:  CRUD over the authenticated user's program applications plus the
       administrative status change.
How:   Every route on this router requires a bearer token. Single-resource
       routes receive an OwnershipCheck; ApplicationService loads the record
       and applies it.

Route Inventory:
    POST   /applications                     submit (duplicate check, then per-user limit)
    GET    /applications                     list with filters, sort and pagination
    GET    /applications/{id}                detail with analytics
    PUT    /applications/{id}                edit while pending
    DELETE /applications/{id}                withdraw while pending or under review
    PATCH  /applications/{id}/status         admin review step
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from masterminds.identity import AuthenticatedUser, ClientInfo, OwnershipCheck
from masterminds.middleware.auth import (
    client_info,
    get_current_user,
    ownership_context,
    require_roles,
    submission_limiter,
)
from masterminds.schemas.application import (
    ApplicationCreate,
    ApplicationData,
    ApplicationListData,
    ApplicationUpdate,
    ListFilters,
    StatusUpdate,
    WithdrawalData,
    WithdrawnApplication,
)
from masterminds.schemas.common import Envelope, ErrorResponse
from masterminds.services.application_service import application_service, to_application_out
from masterminds.storage import storage
from masterminds.validation import SORT_PATTERN, ApplicationStatus, Program

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/applications",
    tags=["Applications"],
    dependencies=[Depends(get_current_user)],
    responses={
        400: {"description": "Validation failed", "model": ErrorResponse},
        401: {"description": "Not authenticated", "model": ErrorResponse},
    },
)

NOT_FOUND = {404: {"description": "Application not found", "model": ErrorResponse}}


@router.post(
    "",
    status_code=201,
    response_model=Envelope[ApplicationData],
    responses={429: {"description": "Too many submissions", "model": ErrorResponse}},
    summary="Submit an application",
)
async def submit_application(
    payload: ApplicationCreate,
    request: Request,
    response: Response,
    user: AuthenticatedUser = Depends(get_current_user),
    client: ClientInfo = Depends(client_info),
) -> Envelope[ApplicationData]:
    # Duplicates are rejected before they count against the submission limit
    await application_service.ensure_not_duplicate(user.user_id, payload.program)
    await submission_limiter(request, response)

    application = await application_service.submit(user.user_id, payload, client)
    return Envelope[ApplicationData](
        message="Application submitted successfully",
        data=ApplicationData(application=to_application_out(application)),
        meta={
            "storageMode": storage.mode,
            "submissionTime": datetime.now(timezone.utc).isoformat(),
        },
    )


@router.get(
    "",
    response_model=Envelope[ApplicationListData],
    summary="List the current user's applications",
)
async def list_applications(
    user: AuthenticatedUser = Depends(get_current_user),
    page: int = Query(default=1, ge=1, le=1000),
    limit: int = Query(default=10, ge=1, le=100),
    sort: str = Query(default="-submissionDate", pattern=SORT_PATTERN),
    status: Optional[ApplicationStatus] = Query(default=None),
    program: Optional[Program] = Query(default=None),
) -> Envelope[ApplicationListData]:
    applications, pagination = await application_service.list_for_user(
        user.user_id, page=page, limit=limit, sort=sort, status=status, program=program
    )
    return Envelope[ApplicationListData](
        data=ApplicationListData(
            applications=[to_application_out(a) for a in applications],
            pagination=pagination,
            filters=ListFilters(status=status, program=program, sort=sort),
        ),
        meta={"storageMode": storage.mode},
    )


@router.get(
    "/{application_id}",
    response_model=Envelope[ApplicationData],
    responses=NOT_FOUND,
    summary="Get one application with analytics",
)
async def get_application(
    check: OwnershipCheck = Depends(ownership_context),
) -> Envelope[ApplicationData]:
    application = await application_service.get(check)
    return Envelope[ApplicationData](
        data=ApplicationData(application=to_application_out(application, with_analytics=True)),
    )


@router.put(
    "/{application_id}",
    response_model=Envelope[ApplicationData],
    responses=NOT_FOUND,
    summary="Edit a pending application",
)
async def update_application(
    payload: ApplicationUpdate,
    check: OwnershipCheck = Depends(ownership_context),
) -> Envelope[ApplicationData]:
    application = await application_service.update(check, payload)
    return Envelope[ApplicationData](
        message="Application updated successfully",
        data=ApplicationData(application=to_application_out(application)),
    )


@router.delete(
    "/{application_id}",
    response_model=Envelope[WithdrawalData],
    responses=NOT_FOUND,
    summary="Withdraw an application",
)
async def withdraw_application(
    check: OwnershipCheck = Depends(ownership_context),
) -> Envelope[WithdrawalData]:
    application = await application_service.withdraw(check)
    return Envelope[WithdrawalData](
        message="Application withdrawn successfully",
        data=WithdrawalData(
            withdrawn_application=WithdrawnApplication(
                id=application.id,
                program=application.program,
                reference_number=application.reference_number,
                withdrawn_at=datetime.now(timezone.utc),
            )
        ),
    )


@router.patch(
    "/{application_id}/status",
    response_model=Envelope[ApplicationData],
    responses={
        **NOT_FOUND,
        403: {"description": "Admin role required", "model": ErrorResponse},
    },
    dependencies=[Depends(require_roles("admin"))],
    summary="Move an application along the review lifecycle",
)
async def change_application_status(
    application_id: int,
    payload: StatusUpdate,
) -> Envelope[ApplicationData]:
    application = await application_service.change_status(application_id, payload)
    return Envelope[ApplicationData](
        message="Application status updated",
        data=ApplicationData(application=to_application_out(application)),
    )
