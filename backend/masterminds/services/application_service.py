"""
MasterMinds Backend — Application Service
==========================================

What:  Business rules for program applications: submission, listing,
       retrieval, content updates, withdrawal and review status changes.
How:   Works on ApplicationRecord objects from the storage adapter and
       shapes them into response schemas. Ownership is compared here, after
       the record is loaded, using the OwnershipCheck built by the auth layer.
Who:   Called by the /applications route handlers.

Lifecycle:
    pending ──▶ under_review ──▶ interview_scheduled ──▶ accepted
                     │                    ├──────────▶ rejected
                     ├──▶ rejected        └──────────▶ waitlisted
                     └──▶ waitlisted

    Content edits:  only while pending
    Withdrawal:     while pending or under_review
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, TypeVar

from masterminds.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError
from masterminds.identity import ClientInfo, OwnershipCheck
from masterminds.schemas.application import (
    EDITABLE_FIELDS,
    ApplicationAnalytics,
    ApplicationCreate,
    ApplicationOut,
    ApplicationUpdate,
    AvailabilityOut,
    DuplicateApplicationDetails,
    Pagination,
    ProjectIn,
    ProjectOut,
    SkillIn,
    SkillOut,
    StatusUpdate,
)
from masterminds.storage import ApplicationRecord, StorageAdapter, storage

logger = logging.getLogger(__name__)

T = TypeVar("T")

EDITABLE_STATUSES = ("pending",)
WITHDRAWABLE_STATUSES = ("pending", "under_review")

STATUS_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    "pending": ("under_review",),
    "under_review": ("interview_scheduled", "rejected", "waitlisted"),
    "interview_scheduled": ("accepted", "rejected", "waitlisted"),
    "accepted": (),
    "rejected": (),
    "waitlisted": (),
}

# Wire sort names → record attributes
SORT_ATTRIBUTES = {
    "submissionDate": "submission_date",
    "lastUpdated": "last_updated",
    "program": "program",
    "status": "status",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ══════════════════════════════════════════════════════════════════════════
# Pure helpers
# ══════════════════════════════════════════════════════════════════════════

def paginate(items: Sequence[T], page: int, limit: int) -> Tuple[List[T], Pagination]:
    """Slice one page out of an already filtered and sorted sequence."""
    total = len(items)
    start = (page - 1) * limit
    end = start + limit
    return list(items[start:end]), Pagination(
        current_page=page,
        total_pages=math.ceil(total / limit) if total else 0,
        total_items=total,
        items_per_page=limit,
        has_next_page=end < total,
        has_prev_page=page > 1,
    )


def sort_applications(applications: List[ApplicationRecord], sort: str) -> List[ApplicationRecord]:
    descending = sort.startswith("-")
    attribute = SORT_ATTRIBUTES[sort.lstrip("-")]
    return sorted(applications, key=lambda a: getattr(a, attribute), reverse=descending)


def skills_document(skills: List[SkillIn], added_at: str) -> List[Dict[str, Any]]:
    return [{"skill": s.skill, "level": s.level, "added_at": added_at} for s in skills]


def projects_document(projects: List[ProjectIn], added_at: str) -> List[Dict[str, Any]]:
    return [
        {
            "name": p.name,
            "description": p.description,
            "technologies": p.technologies,
            "url": str(p.url) if p.url else None,
            "github_url": str(p.github_url) if p.github_url else None,
            "added_at": added_at,
        }
        for p in projects
    ]


def build_analytics(application: ApplicationRecord, now: Optional[datetime] = None) -> ApplicationAnalytics:
    now = now or _utcnow()
    return ApplicationAnalytics(
        days_submitted=(now - application.submission_date).days,
        last_updated=application.last_updated or application.submission_date,
        can_edit=application.status in EDITABLE_STATUSES,
        can_withdraw=application.status in WITHDRAWABLE_STATUSES,
    )


def to_application_out(application: ApplicationRecord, with_analytics: bool = False) -> ApplicationOut:
    return ApplicationOut(
        id=application.id,
        user_id=application.user_id,
        program=application.program,
        motivation=application.motivation,
        experience=application.experience,
        goals=application.goals,
        availability=AvailabilityOut(
            start_date=application.start_date,
            time_commitment=application.time_commitment,
        ),
        technical_skills=[SkillOut(**skill) for skill in application.technical_skills],
        projects=[ProjectOut(**project) for project in application.projects],
        status=application.status,
        review_notes=application.review_notes,
        interview_date=application.interview_date,
        submission_date=application.submission_date,
        last_updated=application.last_updated,
        reference_number=application.reference_number,
        analytics=build_analytics(application) if with_analytics else None,
    )


def _duplicate_error(existing: ApplicationRecord) -> ConflictError:
    details = DuplicateApplicationDetails(
        id=existing.id,
        program=existing.program,
        status=existing.status,
        submission_date=existing.submission_date,
    )
    return ConflictError(
        "You have already submitted an application for this program",
        code="DUPLICATE_APPLICATION",
        context=details.as_details(),
    )


class ApplicationService:

    def __init__(self, store: StorageAdapter = storage) -> None:
        self.store = store

    # ── Submission ────────────────────────────────────────────────────────
    async def ensure_not_duplicate(self, user_id: int, program: str) -> None:
        """Raises ConflictError(DUPLICATE_APPLICATION) with the existing application's summary."""
        existing = await self.store.find_application_by_user_and_program(user_id, program)
        if existing is not None:
            raise _duplicate_error(existing)

    async def submit(
        self, user_id: int, payload: ApplicationCreate, client: ClientInfo
    ) -> ApplicationRecord:
        """
        Persist a new application in status 'pending'.

        The store enforces the (user, program) uniqueness itself; a concurrent
        duplicate that got past ensure_not_duplicate() is reported the same way.
        """
        added_at = _utcnow().isoformat()
        document = {
            "program": payload.program,
            "motivation": payload.motivation,
            "experience": payload.experience,
            "goals": payload.goals,
            "start_date": payload.availability.start_date,
            "time_commitment": payload.availability.time_commitment,
            "technical_skills": skills_document(payload.technical_skills, added_at),
            "projects": projects_document(payload.projects, added_at),
            "submission_metadata": {
                "user_agent": client.user_agent,
                "ip_address": client.ip_address,
                "submission_source": "web",
            },
        }
        try:
            application = await self.store.create_application(user_id, document)
        except ConflictError:
            existing = await self.store.find_application_by_user_and_program(user_id, payload.program)
            if existing is not None:
                raise _duplicate_error(existing)
            raise
        logger.info(
            "Application %s submitted by user %s for %s",
            application.reference_number,
            user_id,
            application.program,
        )
        return application

    # ── Listing ───────────────────────────────────────────────────────────
    async def list_for_user(
        self,
        user_id: int,
        page: int = 1,
        limit: int = 10,
        sort: str = "-submissionDate",
        status: Optional[str] = None,
        program: Optional[str] = None,
    ) -> Tuple[List[ApplicationRecord], Pagination]:
        applications = await self.store.find_applications_by_user(user_id)
        if status:
            applications = [a for a in applications if a.status == status]
        if program:
            applications = [a for a in applications if a.program == program]
        return paginate(sort_applications(applications, sort), page, limit)

    # ── Single resource ───────────────────────────────────────────────────
    async def get(self, check: OwnershipCheck) -> ApplicationRecord:
        """
        Loads the application and applies the ownership comparison.

        Another user's application is reported as missing, so ids of foreign
        applications cannot be probed.
        """
        application = await self.store.find_application_by_id(check.resource_id)
        if application is None or not check.permits(application.user_id):
            raise NotFoundError(
                "application", str(check.resource_id), code="APPLICATION_NOT_FOUND"
            )
        return application

    async def update(self, check: OwnershipCheck, payload: ApplicationUpdate) -> ApplicationRecord:
        application = await self.get(check)
        if application.status not in EDITABLE_STATUSES:
            raise InvalidStateError(
                "Cannot update application that is no longer pending",
                current_status=application.status,
                allowed_statuses=EDITABLE_STATUSES,
                code="APPLICATION_NOT_EDITABLE",
            )

        provided = payload.model_dump(exclude_none=True)
        if not provided:
            raise ValidationError(
                "No valid fields to update",
                code="NO_UPDATE_DATA",
                context={"allowedFields": list(EDITABLE_FIELDS)},
            )

        added_at = _utcnow().isoformat()
        changes: Dict[str, Any] = {
            key: provided[key] for key in ("motivation", "experience", "goals") if key in provided
        }
        if payload.technical_skills is not None:
            changes["technical_skills"] = skills_document(payload.technical_skills, added_at)
        if payload.projects is not None:
            changes["projects"] = projects_document(payload.projects, added_at)

        updated = await self.store.update_application(application.id, changes)
        if updated is None:
            raise NotFoundError("application", str(application.id), code="APPLICATION_NOT_FOUND")
        logger.info("Application %s updated (%s)", updated.id, ", ".join(sorted(changes)))
        return updated

    async def withdraw(self, check: OwnershipCheck) -> ApplicationRecord:
        application = await self.get(check)
        if application.status not in WITHDRAWABLE_STATUSES:
            raise InvalidStateError(
                "Cannot withdraw application with current status",
                current_status=application.status,
                allowed_statuses=WITHDRAWABLE_STATUSES,
                code="APPLICATION_NOT_WITHDRAWABLE",
            )
        await self.store.delete_application(application.id)
        logger.info("Application %s withdrawn", application.reference_number)
        return application

    async def change_status(self, application_id: int, payload: StatusUpdate) -> ApplicationRecord:
        """Administrative review step; only the lifecycle edges above are accepted."""
        application = await self.store.find_application_by_id(application_id)
        if application is None:
            raise NotFoundError("application", str(application_id), code="APPLICATION_NOT_FOUND")

        allowed = STATUS_TRANSITIONS[application.status]
        if payload.status not in allowed:
            raise InvalidStateError(
                f"Cannot move application from '{application.status}' to '{payload.status}'",
                current_status=application.status,
                allowed_statuses=allowed,
                code="INVALID_STATUS_TRANSITION",
            )

        changes: Dict[str, Any] = {"status": payload.status}
        if payload.review_notes is not None:
            changes["review_notes"] = payload.review_notes
        if payload.interview_date is not None:
            changes["interview_date"] = payload.interview_date

        updated = await self.store.update_application(application_id, changes)
        if updated is None:
            raise NotFoundError("application", str(application_id), code="APPLICATION_NOT_FOUND")
        logger.info("Application %s: %s → %s", updated.id, application.status, updated.status)
        return updated


# ── Singleton Instance ────────────────────────────────────────────────────
application_service = ApplicationService()
