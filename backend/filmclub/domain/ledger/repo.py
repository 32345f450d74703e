"""SQL for food orders, ledger entries and payment reminders."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Sequence
from uuid import UUID, uuid4

import asyncpg

from filmclub.domain.ledger.models import PaymentReminder
from filmclub.domain.ledger.netting import Movement
from filmclub.infra.postgres import get_pool

SETTLEMENT_NOTE_PREFIX = "Settlement proposal: "
FOOD_ORDER_NOTE_PREFIX = "Food order split: "


def settlement_note(proposal_id: UUID, note: Optional[str] = None) -> str:
    text = f"{SETTLEMENT_NOTE_PREFIX}{proposal_id}"
    if note and note.strip():
        text += f" ({note.strip()})"
    return text


class LedgerRepository:
    async def list_movements(
        self,
        club_id: UUID,
        *,
        currency: Optional[str] = None,
        conn: Optional[asyncpg.Connection] = None,
    ) -> list[Movement]:
        """Ledger entries summed per (debtor, creditor, currency)."""
        query = """
            SELECT from_user_id, to_user_id, currency, SUM(amount) AS amount
            FROM ledger_entries
            WHERE club_id = $1 AND ($2::text IS NULL OR currency = $2)
            GROUP BY from_user_id, to_user_id, currency
            HAVING SUM(amount) > 0
            ORDER BY currency, MIN(created_at)
        """
        args = (club_id, currency.upper() if currency else None)
        if conn is not None:
            rows = await conn.fetch(query, *args)
        else:
            pool = await get_pool()
            async with pool.acquire() as pooled:
                rows = await pooled.fetch(query, *args)
        return [
            Movement(
                from_user_id=row["from_user_id"],
                to_user_id=row["to_user_id"],
                currency=row["currency"],
                amount=Decimal(row["amount"]),
            )
            for row in rows
        ]

    async def find_food_order_for_proposal(self, proposal_id: UUID, *, conn: asyncpg.Connection) -> Optional[UUID]:
        return await conn.fetchval("SELECT id FROM food_orders WHERE proposed_change_id = $1", proposal_id)

    async def insert_food_order(
        self,
        *,
        conn: asyncpg.Connection,
        proposal_id: Optional[UUID],
        club_id: UUID,
        vendor: str,
        total_cost: Decimal,
        currency: str,
        payer_user_id: UUID,
        created_by_user_id: UUID,
        shares: Sequence[tuple[UUID, Decimal]],
    ) -> UUID:
        food_order_id = uuid4()
        await conn.execute(
            """
            INSERT INTO food_orders (
                id, proposed_change_id, club_id, vendor, total_cost, currency, payer_user_id, created_by_user_id
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            """,
            food_order_id,
            proposal_id,
            club_id,
            vendor,
            total_cost,
            currency,
            payer_user_id,
            created_by_user_id,
        )
        await conn.executemany(
            """
            INSERT INTO food_order_participants (food_order_id, user_id, share_amount)
            VALUES ($1, $2, $3)
            """,
            [(food_order_id, user_id, amount) for user_id, amount in shares],
        )
        return food_order_id

    async def insert_ledger_entry(
        self,
        *,
        conn: asyncpg.Connection,
        club_id: UUID,
        from_user_id: UUID,
        to_user_id: UUID,
        amount: Decimal,
        currency: str,
        note: Optional[str],
        food_order_id: Optional[UUID] = None,
    ) -> UUID:
        entry_id = uuid4()
        await conn.execute(
            """
            INSERT INTO ledger_entries (id, club_id, food_order_id, from_user_id, to_user_id, amount, currency, note)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            """,
            entry_id,
            club_id,
            food_order_id,
            from_user_id,
            to_user_id,
            amount,
            currency,
            note,
        )
        return entry_id

    async def find_settlement_entry(self, proposal_id: UUID, *, conn: asyncpg.Connection) -> Optional[UUID]:
        # The note may carry a free-text suffix, so match on the prefix.
        return await conn.fetchval(
            "SELECT id FROM ledger_entries WHERE note LIKE $1 || '%' LIMIT 1",
            settlement_note(proposal_id),
        )

    async def insert_payment_reminder(
        self,
        *,
        club_id: UUID,
        from_user_id: UUID,
        to_user_id: UUID,
        currency: str,
        outstanding_amount: Decimal,
        reminder_amount: Decimal,
        note: Optional[str],
        conn: Optional[asyncpg.Connection] = None,
    ) -> PaymentReminder:
        query = """
            WITH inserted AS (
                INSERT INTO payment_reminders (
                    id, club_id, from_user_id, to_user_id, currency, outstanding_amount, reminder_amount, note
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                RETURNING *
            )
            SELECT r.*, fu.display_name AS from_display_name, tu.display_name AS to_display_name
            FROM inserted r
            INNER JOIN users fu ON fu.id = r.from_user_id
            INNER JOIN users tu ON tu.id = r.to_user_id
        """
        args = (uuid4(), club_id, from_user_id, to_user_id, currency, outstanding_amount, reminder_amount, note)
        if conn is not None:
            row = await conn.fetchrow(query, *args)
        else:
            pool = await get_pool()
            async with pool.acquire() as pooled:
                row = await pooled.fetchrow(query, *args)
        return PaymentReminder.model_validate(dict(row))

    async def list_payment_reminders(
        self,
        club_id: UUID,
        *,
        limit: int,
        offset: int,
        to_user_id: Optional[UUID] = None,
    ) -> tuple[list[PaymentReminder], int]:
        pool = await get_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT r.*, fu.display_name AS from_display_name, tu.display_name AS to_display_name
                FROM payment_reminders r
                INNER JOIN users fu ON fu.id = r.from_user_id
                INNER JOIN users tu ON tu.id = r.to_user_id
                WHERE r.club_id = $1 AND ($2::uuid IS NULL OR r.to_user_id = $2)
                ORDER BY r.created_at DESC
                LIMIT $3 OFFSET $4
                """,
                club_id,
                to_user_id,
                limit,
                offset,
            )
            total = await conn.fetchval(
                """
                SELECT COUNT(*) FROM payment_reminders
                WHERE club_id = $1 AND ($2::uuid IS NULL OR to_user_id = $2)
                """,
                club_id,
                to_user_id,
            )
        return [PaymentReminder.model_validate(dict(row)) for row in rows], int(total or 0)
