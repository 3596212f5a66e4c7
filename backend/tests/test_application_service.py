"""
MasterMinds Backend — Application Service Unit Tests
=====================================================

What:  Tests for ApplicationService and its pure helpers.
How:   Service tests run over a private MemoryStorage; helper tests use plain
       records and lists.

What we test:
    ✅ Pagination arithmetic and sorting by wire field names
    ✅ Submission stores nested documents and client metadata
    ✅ Duplicate detection with the existing application's summary
    ✅ Ownership: foreign applications are reported as missing, admins pass
    ✅ Edit / withdraw only in the allowed statuses
    ✅ Review status transitions
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from masterminds.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError
from masterminds.identity import ClientInfo, OwnershipCheck
from masterminds.schemas.application import ApplicationCreate, ApplicationUpdate, StatusUpdate
from masterminds.services.application_service import (
    ApplicationService,
    build_analytics,
    paginate,
    sort_applications,
)
from masterminds.storage import ApplicationRecord, MemoryStorage, StorageAdapter

CLIENT = ClientInfo(ip_address="10.0.0.1", user_agent="pytest")

MOTIVATION = (
    "Analytical engines fascinate me and I would like to learn how to build real software "
    "with a team. I study every evening and I am ready to commit to the full program."
)
EXPERIENCE = "Several years writing notes and small programs for calculating machines."
GOALS = "Work as a developer on systems that help scientists compute results faster."


def submission(program: str = "Full Stack Development") -> ApplicationCreate:
    return ApplicationCreate.model_validate(
        {
            "program": program,
            "motivation": MOTIVATION,
            "experience": EXPERIENCE,
            "goals": GOALS,
            "availability": {
                "startDate": (date.today() + timedelta(days=30)).isoformat(),
                "timeCommitment": "Full-time (40+ hours/week)",
            },
            "technicalSkills": [{"skill": "Python", "level": "Advanced"}],
            "projects": [
                {
                    "name": "Engine",
                    "description": "A small analytical engine simulator",
                    "url": "https://ada.dev/engine",
                }
            ],
        }
    )


def record(id: int, **overrides) -> ApplicationRecord:
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    fields = dict(
        id=id,
        user_id=1,
        program="Cybersecurity",
        motivation="m",
        experience="e",
        goals="g",
        start_date=date(2026, 2, 1),
        time_commitment="Flexible",
        submission_date=now,
        last_updated=now,
        reference_number=f"MM-2026-{id:06d}",
    )
    fields.update(overrides)
    return ApplicationRecord(**fields)


class TestHelpers:

    def test_second_page(self):
        items, pagination = paginate(list(range(15)), page=2, limit=10)

        assert items == [10, 11, 12, 13, 14]
        assert pagination.current_page == 2
        assert pagination.total_pages == 2
        assert pagination.total_items == 15
        assert pagination.items_per_page == 10
        assert not pagination.has_next_page
        assert pagination.has_prev_page

    def test_empty_listing(self):
        items, pagination = paginate([], page=1, limit=10)
        assert items == []
        assert pagination.total_pages == 0
        assert not pagination.has_next_page
        assert not pagination.has_prev_page

    def test_page_past_the_end(self):
        items, pagination = paginate(list(range(3)), page=5, limit=10)
        assert items == []
        assert pagination.has_prev_page

    def test_sorting(self):
        a = record(1, program="UI/UX Design", status="pending")
        b = record(2, program="Cybersecurity", status="accepted")
        c = record(3, program="DevOps Engineering", status="rejected")

        assert [r.id for r in sort_applications([a, b, c], "program")] == [2, 3, 1]
        assert [r.id for r in sort_applications([a, b, c], "-status")] == [3, 1, 2]

    def test_analytics(self):
        submitted = datetime(2026, 1, 1, tzinfo=timezone.utc)
        analytics = build_analytics(
            record(1, submission_date=submitted, status="under_review"),
            now=submitted + timedelta(days=9, hours=5),
        )
        assert analytics.days_submitted == 9
        assert not analytics.can_edit
        assert analytics.can_withdraw


class TestSubmitAndList:

    def setup_method(self):
        self.store = StorageAdapter(MemoryStorage())
        self.service = ApplicationService(store=self.store)

    @pytest.mark.asyncio
    async def test_submit(self):
        application = await self.service.submit(1, submission(), CLIENT)

        assert application.status == "pending"
        assert application.reference_number.startswith("MM-")
        assert application.technical_skills[0]["level"] == "Advanced"
        assert "added_at" in application.technical_skills[0]
        assert application.projects[0]["url"] == "https://ada.dev/engine"
        assert application.submission_metadata == {
            "user_agent": "pytest",
            "ip_address": "10.0.0.1",
            "submission_source": "web",
        }

    @pytest.mark.asyncio
    async def test_duplicate_reports_existing_application(self):
        first = await self.service.submit(1, submission(), CLIENT)

        with pytest.raises(ConflictError) as excinfo:
            await self.service.ensure_not_duplicate(1, "Full Stack Development")
        existing = excinfo.value.context["existingApplication"]
        assert existing["id"] == first.id
        assert existing["status"] == "pending"
        assert "submissionDate" in existing

        with pytest.raises(ConflictError) as excinfo:
            await self.service.submit(1, submission(), CLIENT)
        assert excinfo.value.code == "DUPLICATE_APPLICATION"

        # Another user may apply to the same program
        await self.service.ensure_not_duplicate(2, "Full Stack Development")

    @pytest.mark.asyncio
    async def test_list_filters(self):
        await self.service.submit(1, submission("Cybersecurity"), CLIENT)
        second = await self.service.submit(1, submission("UI/UX Design"), CLIENT)
        await self.service.submit(2, submission("UI/UX Design"), CLIENT)
        await self.store.update_application(second.id, {"status": "under_review"})

        items, pagination = await self.service.list_for_user(1)
        assert pagination.total_items == 2

        items, _ = await self.service.list_for_user(1, status="under_review")
        assert [a.id for a in items] == [second.id]

        items, _ = await self.service.list_for_user(1, program="Cybersecurity")
        assert [a.program for a in items] == ["Cybersecurity"]

        items, _ = await self.service.list_for_user(1, sort="program")
        assert [a.program for a in items] == ["Cybersecurity", "UI/UX Design"]


class TestSingleApplication:

    def setup_method(self):
        self.store = StorageAdapter(MemoryStorage())
        self.service = ApplicationService(store=self.store)

    async def _submit(self, user_id: int = 1):
        return await self.service.submit(user_id, submission(), CLIENT)

    @pytest.mark.asyncio
    async def test_owner_and_admin_can_read(self):
        application = await self._submit()

        assert (await self.service.get(OwnershipCheck(1, application.id))).id == application.id
        assert (await self.service.get(OwnershipCheck(9, application.id, is_admin=True))).id == application.id

    @pytest.mark.asyncio
    async def test_foreign_application_is_not_found(self):
        application = await self._submit()
        with pytest.raises(NotFoundError) as excinfo:
            await self.service.get(OwnershipCheck(2, application.id))
        assert excinfo.value.code == "APPLICATION_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_update_pending(self):
        application = await self._submit()
        payload = ApplicationUpdate.model_validate(
            {"goals": GOALS + " Later, mentor others.", "technicalSkills": [{"skill": "Go", "level": "Beginner"}]}
        )

        updated = await self.service.update(OwnershipCheck(1, application.id), payload)

        assert updated.goals.endswith("mentor others.")
        assert [s["skill"] for s in updated.technical_skills] == ["Go"]
        assert updated.motivation == application.motivation

    @pytest.mark.asyncio
    async def test_update_without_fields(self):
        application = await self._submit()
        with pytest.raises(ValidationError) as excinfo:
            await self.service.update(OwnershipCheck(1, application.id), ApplicationUpdate())
        assert excinfo.value.code == "NO_UPDATE_DATA"
        assert "motivation" in excinfo.value.context["allowedFields"]

    @pytest.mark.asyncio
    async def test_update_after_review_started(self):
        application = await self._submit()
        await self.store.update_application(application.id, {"status": "under_review"})

        with pytest.raises(InvalidStateError) as excinfo:
            await self.service.update(
                OwnershipCheck(1, application.id), ApplicationUpdate(goals=GOALS)
            )
        assert excinfo.value.code == "APPLICATION_NOT_EDITABLE"
        assert excinfo.value.context == {
            "currentStatus": "under_review",
            "allowedStatuses": ["pending"],
        }

    @pytest.mark.asyncio
    async def test_withdraw(self):
        application = await self._submit()
        await self.store.update_application(application.id, {"status": "under_review"})

        withdrawn = await self.service.withdraw(OwnershipCheck(1, application.id))

        assert withdrawn.id == application.id
        assert await self.store.find_application_by_id(application.id) is None
        # The program is free again
        await self.service.ensure_not_duplicate(1, application.program)

    @pytest.mark.asyncio
    async def test_withdraw_after_decision(self):
        application = await self._submit()
        await self.store.update_application(application.id, {"status": "accepted"})

        with pytest.raises(InvalidStateError) as excinfo:
            await self.service.withdraw(OwnershipCheck(1, application.id))
        assert excinfo.value.code == "APPLICATION_NOT_WITHDRAWABLE"


class TestStatusTransitions:

    def setup_method(self):
        self.store = StorageAdapter(MemoryStorage())
        self.service = ApplicationService(store=self.store)

    @pytest.mark.asyncio
    async def test_full_review_path(self):
        application = await self.service.submit(1, submission(), CLIENT)
        interview = datetime(2026, 12, 1, 15, 0, tzinfo=timezone.utc)

        await self.service.change_status(application.id, StatusUpdate(status="under_review"))
        scheduled = await self.service.change_status(
            application.id, StatusUpdate(status="interview_scheduled", interview_date=interview)
        )
        accepted = await self.service.change_status(
            application.id, StatusUpdate(status="accepted", review_notes="Strong candidate")
        )

        assert scheduled.interview_date == interview
        assert accepted.status == "accepted"
        assert accepted.review_notes == "Strong candidate"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("target", ["accepted", "interview_scheduled", "pending"])
    async def test_pending_can_only_go_under_review(self, target):
        application = await self.service.submit(1, submission(), CLIENT)
        with pytest.raises(InvalidStateError) as excinfo:
            await self.service.change_status(application.id, StatusUpdate(status=target))
        assert excinfo.value.code == "INVALID_STATUS_TRANSITION"
        assert excinfo.value.allowed_statuses == ["under_review"]

    @pytest.mark.asyncio
    async def test_final_statuses_are_final(self):
        application = await self.service.submit(1, submission(), CLIENT)
        await self.store.update_application(application.id, {"status": "rejected"})
        with pytest.raises(InvalidStateError):
            await self.service.change_status(application.id, StatusUpdate(status="under_review"))

    @pytest.mark.asyncio
    async def test_missing_application(self):
        with pytest.raises(NotFoundError):
            await self.service.change_status(77, StatusUpdate(status="under_review"))
