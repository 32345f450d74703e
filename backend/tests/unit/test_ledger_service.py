from decimal import Decimal
from uuid import uuid4

import pytest

from filmclub.domain.exceptions import ForbiddenError, ValidationError
from filmclub.domain.ledger.effects import food_order_shares
from filmclub.domain.proposals.payloads import parse_payload


def test_explicit_shares_are_used_as_given():
	a, b = uuid4(), uuid4()
	payload = parse_payload(
		"food_order",
		{
			"vendor": "Curry House",
			"totalCost": 30,
			"currency": "EUR",
			"payerUserId": str(a),
			"participantShares": [
				{"userId": str(a), "amount": 12.5},
				{"userId": str(b), "amount": 10},
				{"userId": str(b), "amount": 7.5},
			],
		},
	)
	assert food_order_shares(payload) == [(a, 1250), (b, 1750)]


@pytest.mark.asyncio
async def test_balances_summary_and_currency_filter(engine):
	club_id, (a, b, c) = engine.store.add_club(members=3)
	engine.store.add_ledger_entry(club_id, b, a, "10.00")
	engine.store.add_ledger_entry(club_id, c, a, "5.50")
	engine.store.add_ledger_entry(club_id, a, c, "2.00", currency="USD")

	eur = await engine.ledger.balances(club_id, b, currency="eur")
	assert {row.user_id: row.net_amount for row in eur} == {
		a: Decimal("15.50"),
		b: Decimal("-10.00"),
		c: Decimal("-5.50"),
	}
	assert {row.currency for row in eur} == {"EUR"}

	everything = await engine.ledger.balances(club_id, b)
	assert len(everything) == 6

	summary = await engine.ledger.summary(club_id, a, currency="USD")
	by_user = {row.user_id: (row.owes, row.owed) for row in summary}
	assert by_user[a] == (Decimal("2.00"), Decimal("0.00"))
	assert by_user[c] == (Decimal("0.00"), Decimal("2.00"))

	matrix = await engine.ledger.debt_matrix(club_id, c, currency="EUR")
	assert sorted((e.from_display_name, e.to_display_name, e.amount) for e in matrix) == [
		("member1", "member0", Decimal("10.00")),
		("member2", "member0", Decimal("5.50")),
	]


@pytest.mark.asyncio
async def test_reads_require_membership(engine):
	club_id, _ = engine.store.add_club(members=2)
	stranger = engine.store.add_user("stranger")
	with pytest.raises(ForbiddenError):
		await engine.ledger.overview(club_id, stranger)


@pytest.mark.asyncio
async def test_payment_reminder_defaults_to_outstanding_amount(engine):
	club_id, (creditor, debtor) = engine.store.add_club(members=2)
	engine.store.add_ledger_entry(club_id, debtor, creditor, "20.00")
	engine.store.add_ledger_entry(club_id, creditor, debtor, "4.50")

	reminder = await engine.ledger.create_payment_reminder(
		club_id, from_user_id=creditor, to_user_id=debtor, currency="eur", note="  pizza  "
	)
	assert reminder.outstanding_amount == Decimal("15.50")
	assert reminder.reminder_amount == Decimal("15.50")
	assert reminder.currency == "EUR"
	assert reminder.note == "pizza"

	partial = await engine.ledger.create_payment_reminder(
		club_id, from_user_id=creditor, to_user_id=debtor, currency="EUR", amount=5
	)
	assert partial.reminder_amount == Decimal("5.00")


@pytest.mark.asyncio
@pytest.mark.parametrize(
	"amount, code",
	[
		(0, "invalid_amount"),
		(-1, "invalid_amount"),
		(float("nan"), "invalid_amount"),
		("abc", "invalid_amount"),
		(100, "amount_exceeds_outstanding"),
	],
)
async def test_payment_reminder_amount_checks(engine, amount, code):
	club_id, (creditor, debtor) = engine.store.add_club(members=2)
	engine.store.add_ledger_entry(club_id, debtor, creditor, "20.00")
	with pytest.raises(ValidationError) as excinfo:
		await engine.ledger.create_payment_reminder(
			club_id, from_user_id=creditor, to_user_id=debtor, currency="EUR", amount=amount
		)
	assert excinfo.value.detail == code


@pytest.mark.asyncio
async def test_payment_reminder_parties(engine):
	club_id, (creditor, debtor) = engine.store.add_club(members=2)
	outsider = engine.store.add_user("outsider")
	engine.store.add_ledger_entry(club_id, debtor, creditor, "20.00")

	with pytest.raises(ValidationError) as excinfo:
		await engine.ledger.create_payment_reminder(club_id, from_user_id=creditor, to_user_id=creditor, currency="EUR")
	assert excinfo.value.detail == "self_reminder_not_allowed"

	with pytest.raises(ValidationError) as excinfo:
		await engine.ledger.create_payment_reminder(club_id, from_user_id=creditor, to_user_id=outsider, currency="EUR")
	assert excinfo.value.detail == "participant_not_member"

	# The debtor owes the creditor, not the other way round.
	with pytest.raises(ValidationError) as excinfo:
		await engine.ledger.create_payment_reminder(club_id, from_user_id=debtor, to_user_id=creditor, currency="EUR")
	assert excinfo.value.detail == "no_outstanding_debt"

	with pytest.raises(ForbiddenError):
		await engine.ledger.create_payment_reminder(club_id, from_user_id=outsider, to_user_id=debtor, currency="EUR")

	with pytest.raises(ValidationError) as excinfo:
		await engine.ledger.create_payment_reminder(club_id, from_user_id=creditor, to_user_id=debtor, currency="  ")
	assert excinfo.value.detail == "invalid_payload"


@pytest.mark.asyncio
async def test_payment_reminders_page(engine):
	club_id, (creditor, debtor, other) = engine.store.add_club(members=3)
	engine.store.add_ledger_entry(club_id, debtor, creditor, "9.00")
	engine.store.add_ledger_entry(club_id, other, creditor, "9.00")
	for _ in range(3):
		await engine.ledger.create_payment_reminder(club_id, from_user_id=creditor, to_user_id=debtor, currency="EUR", amount=1)
	await engine.ledger.create_payment_reminder(club_id, from_user_id=creditor, to_user_id=other, currency="EUR")

	page = await engine.ledger.list_payment_reminders(club_id, debtor, limit=2, offset=0)
	assert (page.total, page.limit, len(page.items)) == (4, 2, 2)
	assert page.items[0].to_user_id == other

	filtered = await engine.ledger.list_payment_reminders(club_id, debtor, limit=500, offset=-3, to_user_id=debtor)
	assert (filtered.total, filtered.limit, filtered.offset) == (3, 100, 0)
	assert all(item.to_user_id == debtor for item in filtered.items)
