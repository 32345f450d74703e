from datetime import date, datetime, timedelta, timezone

import pytest

from filmclub.domain.exceptions import InvalidExecutionPayload
from filmclub.domain.meetings.models import MeetingStatus
from filmclub.domain.meetings.service import today_in
from filmclub.domain.proposals.models import ProposalStatus


def test_today_in_uses_club_timezone_and_falls_back_on_unknown_zone():
	late_evening_utc = datetime(2025, 3, 1, 23, 30, tzinfo=timezone.utc)
	assert today_in("America/New_York", now=late_evening_utc) == date(2025, 3, 1)
	assert today_in("Europe/Berlin", now=late_evening_utc) == date(2025, 3, 2)
	assert today_in("Mars/Olympus_Mons", now=late_evening_utc) == date(2025, 3, 2)
	assert today_in(None, now=late_evening_utc) == date(2025, 3, 2)


@pytest.mark.asyncio
async def test_listing_auto_starts_the_earliest_due_meeting(engine):
	club_id, (owner, _) = engine.store.add_club(members=2)
	today = today_in("Europe/Berlin")
	later = engine.store.add_meeting(club_id, scheduled=today + timedelta(days=3))
	due_yesterday = engine.store.add_meeting(club_id, scheduled=today - timedelta(days=1))
	due_today = engine.store.add_meeting(club_id, scheduled=today)

	meetings = await engine.meetings.list_meetings(club_id, owner)

	assert [m.id for m in meetings] == [due_yesterday.id, due_today.id, later.id]
	assert [m.status for m in meetings] == [MeetingStatus.ACTIVE, MeetingStatus.SCHEDULED, MeetingStatus.SCHEDULED]
	assert meetings[0].started_at is not None


@pytest.mark.asyncio
async def test_no_auto_start_while_another_meeting_is_active(engine):
	club_id, (owner, _) = engine.store.add_club(members=2)
	today = today_in("Europe/Berlin")
	running = engine.store.add_meeting(club_id, scheduled=today - timedelta(days=7), status=MeetingStatus.ACTIVE)
	due = engine.store.add_meeting(club_id, scheduled=today)

	meetings = await engine.meetings.list_meetings(club_id, owner)

	assert [m.id for m in meetings] == [running.id, due.id]
	assert engine.store.meetings[due.id].status is MeetingStatus.SCHEDULED


@pytest.mark.asyncio
async def test_meeting_lifecycle_through_proposals(engine):
	club_id, (owner,) = engine.store.add_club(members=1)
	next_week = (today_in("Europe/Berlin") + timedelta(days=7)).isoformat()

	scheduled = await engine.proposals.create_proposal(
		club_id, owner, "meeting_schedule", {"scheduledDate": next_week, "title": "Noir night"}
	)
	assert scheduled.proposal.status is ProposalStatus.APPROVED
	(meeting,) = engine.store.meetings.values()
	assert (meeting.title, meeting.status) == ("Noir night", MeetingStatus.SCHEDULED)

	await engine.proposals.evaluate(scheduled.proposal.id, owner)
	assert len(engine.store.meetings) == 1

	await engine.proposals.create_proposal(
		club_id, owner, "meeting_update", {"meetingId": str(meeting.id), "title": "Giallo night"}
	)
	assert engine.store.meetings[meeting.id].title == "Giallo night"
	assert engine.store.meetings[meeting.id].scheduled_date.isoformat() == next_week

	await engine.proposals.create_proposal(club_id, owner, "meeting_start", {"meetingId": str(meeting.id)})
	assert engine.store.meetings[meeting.id].status is MeetingStatus.ACTIVE

	# Starting an already running meeting is a no-op.
	await engine.proposals.create_proposal(club_id, owner, "meeting_start", {"meetingId": str(meeting.id)})

	await engine.proposals.create_proposal(club_id, owner, "meeting_complete", {"meetingId": str(meeting.id)})
	completed = engine.store.meetings[meeting.id]
	assert completed.status is MeetingStatus.COMPLETED
	assert completed.completed_at is not None

	with pytest.raises(InvalidExecutionPayload) as excinfo:
		await engine.proposals.create_proposal(club_id, owner, "meeting_complete", {"meetingId": str(meeting.id)})
	assert excinfo.value.reason == "meeting_not_active"

	with pytest.raises(InvalidExecutionPayload) as excinfo:
		await engine.proposals.create_proposal(club_id, owner, "meeting_start", {"meetingId": str(meeting.id)})
	assert excinfo.value.reason == "meeting_already_completed"


@pytest.mark.asyncio
async def test_only_one_meeting_can_be_active(engine):
	club_id, (owner,) = engine.store.add_club(members=1)
	today = today_in("Europe/Berlin")
	running = engine.store.add_meeting(club_id, scheduled=today, status=MeetingStatus.ACTIVE)
	upcoming = engine.store.add_meeting(club_id, scheduled=today + timedelta(days=14))

	with pytest.raises(InvalidExecutionPayload) as excinfo:
		await engine.proposals.create_proposal(club_id, owner, "meeting_start", {"meetingId": str(upcoming.id)})
	assert excinfo.value.reason == "another_meeting_active"
	assert engine.store.meetings[running.id].status is MeetingStatus.ACTIVE
	assert engine.store.meetings[upcoming.id].status is MeetingStatus.SCHEDULED


@pytest.mark.asyncio
async def test_meeting_from_another_club_is_not_found(engine):
	club_id, (owner,) = engine.store.add_club(members=1)
	other_club, _ = engine.store.add_club(members=1)
	foreign = engine.store.add_meeting(other_club, scheduled=today_in("Europe/Berlin"), status=MeetingStatus.ACTIVE)

	with pytest.raises(InvalidExecutionPayload) as excinfo:
		await engine.proposals.create_proposal(club_id, owner, "meeting_complete", {"meetingId": str(foreign.id)})
	assert excinfo.value.reason == "meeting_not_found"
