"""
Per-user balance ledger, payments and admin commission adjustments.

Every function here mutates balances through additive SQL UPDATE
expressions (never read-modify-write in Python) and flushes but does not
commit: the caller owns the transaction, so a commission or payment change
and its balance delta land together or not at all.

Invariant kept for every user:
    current_balance == total_commissions_earned - total_payments_received
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Mapping, Optional

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from commission_tracker.models import (
    CommissionRecord,
    Payment,
    PaymentCommissionMapping,
    PaymentType,
    User,
    UserBalance,
)
from commission_tracker.services.commission import CENT, ZERO, to_money
from commission_tracker.services.errors import LedgerError, RecordNotFoundError

logger = logging.getLogger(__name__)

_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def _money(value) -> Decimal:
    return to_money(value).quantize(CENT)


# ── Balance rows ──────────────────────────────────────────


async def ensure_balance(db: AsyncSession, user_id: int) -> None:
    """Create a zeroed balance row for `user_id` if none exists."""
    insert_fn = _UPSERT_INSERTS.get(db.get_bind().dialect.name)
    if insert_fn is None:
        if await db.get(UserBalance, user_id) is None:
            db.add(UserBalance(user_id=user_id))
            await db.flush()
        return

    stmt = (
        insert_fn(UserBalance)
        .values(
            user_id=user_id,
            total_commissions_earned=ZERO,
            total_payments_received=ZERO,
            current_balance=ZERO,
        )
        .on_conflict_do_nothing(index_elements=["user_id"])
    )
    await db.execute(stmt)


async def get_balance(db: AsyncSession, user_id: int) -> UserBalance:
    """Current balance row, created on first reference."""
    await ensure_balance(db, user_id)
    result = await db.execute(
        select(UserBalance)
        .where(UserBalance.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def apply_commission_delta(db: AsyncSession, user_id: int, amount) -> None:
    """Add a signed commission change to the user's balance."""
    delta = _money(amount)
    if delta == ZERO:
        return
    await ensure_balance(db, user_id)
    await db.execute(
        update(UserBalance)
        .where(UserBalance.user_id == user_id)
        .values(
            total_commissions_earned=UserBalance.total_commissions_earned + delta,
            current_balance=UserBalance.current_balance + delta,
            last_updated=func.now(),
        )
        .execution_options(synchronize_session=False)
    )


async def apply_payment_delta(db: AsyncSession, user_id: int, amount) -> None:
    """Record a signed payment change against the user's balance."""
    delta = _money(amount)
    if delta == ZERO:
        return
    await ensure_balance(db, user_id)
    await db.execute(
        update(UserBalance)
        .where(UserBalance.user_id == user_id)
        .values(
            total_payments_received=UserBalance.total_payments_received + delta,
            current_balance=UserBalance.current_balance - delta,
            last_updated=func.now(),
        )
        .execution_options(synchronize_session=False)
    )


async def apply_deltas(db: AsyncSession, deltas: Mapping[int, Decimal]) -> int:
    """Apply folded commission deltas, one UPDATE per user.

    Users are processed in id order so concurrent batches lock balance
    rows in the same order.

    Returns:
        Number of balance rows updated
    """
    applied = 0
    for user_id in sorted(deltas):
        delta = _money(deltas[user_id])
        if delta == ZERO:
            continue
        await apply_commission_delta(db, user_id, delta)
        applied += 1
    return applied


async def recalculate_balance(db: AsyncSession, user_id: int) -> UserBalance:
    """Rebuild a balance from the full commission and payment history.

    Admin-only repair for drift; the batch path never calls this.
    """
    earned = _money(
        await db.scalar(
            select(func.coalesce(func.sum(CommissionRecord.commission_amount), 0))
            .where(CommissionRecord.user_id == user_id)
        )
    )
    received = _money(
        await db.scalar(
            select(func.coalesce(func.sum(Payment.amount), 0))
            .where(Payment.user_id == user_id)
        )
    )

    await ensure_balance(db, user_id)
    await db.execute(
        update(UserBalance)
        .where(UserBalance.user_id == user_id)
        .values(
            total_commissions_earned=earned,
            total_payments_received=received,
            current_balance=earned - received,
            last_updated=func.now(),
        )
        .execution_options(synchronize_session=False)
    )
    logger.info(f"Recalculated balance for user {user_id}: earned={earned} received={received}")
    return await get_balance(db, user_id)


# ── Payments ──────────────────────────────────────────────


async def record_payment(
    db: AsyncSession,
    user_id: int,
    amount,
    payment_type: PaymentType,
    *,
    payment_date: Optional[datetime] = None,
    check_number: Optional[str] = None,
    notes: Optional[str] = None,
    commission_ids: Iterable[int] = (),
) -> Payment:
    """Record a payout and optionally mark the commissions it covers as paid."""
    value = _money(amount)
    if value <= ZERO:
        raise LedgerError("Payment amount must be positive")
    if await db.get(User, user_id) is None:
        raise RecordNotFoundError(f"User {user_id} not found")

    payment = Payment(
        user_id=user_id,
        amount=value,
        payment_type=PaymentType(payment_type),
        check_number=check_number,
        notes=notes,
    )
    if payment_date is not None:
        payment.payment_date = payment_date
    db.add(payment)
    await db.flush()

    for commission_id in dict.fromkeys(commission_ids):
        commission = await db.get(CommissionRecord, commission_id)
        if commission is None or commission.user_id != user_id:
            raise LedgerError(f"Commission {commission_id} does not belong to user {user_id}")
        db.add(
            PaymentCommissionMapping(
                payment_id=payment.id,
                commission_due_id=commission.id,
                amount_applied=commission.commission_amount,
            )
        )
        commission.is_paid = True

    await apply_payment_delta(db, user_id, value)
    await db.flush()
    logger.info(f"Recorded payment {payment.id} of {value} for user {user_id}")
    return payment


async def delete_payment(db: AsyncSession, payment_id: int) -> None:
    """Remove a payment, reversing its balance effect and paid flags."""
    payment = await db.get(Payment, payment_id)
    if payment is None:
        raise RecordNotFoundError(f"Payment {payment_id} not found")

    mappings = await db.execute(
        select(PaymentCommissionMapping).where(PaymentCommissionMapping.payment_id == payment_id)
    )
    for mapping in mappings.scalars().all():
        commission = await db.get(CommissionRecord, mapping.commission_due_id)
        if commission is not None:
            commission.is_paid = False
        await db.delete(mapping)

    await apply_payment_delta(db, payment.user_id, -payment.amount)
    await db.delete(payment)
    await db.flush()
    logger.info(f"Deleted payment {payment_id} for user {payment.user_id}")


# ── Admin commission changes ──────────────────────────────


async def create_manual_commission(
    db: AsyncSession,
    user_id: int,
    amount,
    *,
    customer_id: Optional[int] = None,
    build_date: Optional[datetime] = None,
    is_paid: bool = False,
) -> CommissionRecord:
    """Add a hand-entered commission. It is admin-modified from the start."""
    value = _money(amount)
    if value < ZERO:
        raise LedgerError("Commission amount cannot be negative")
    if await db.get(User, user_id) is None:
        raise RecordNotFoundError(f"User {user_id} not found")
    if customer_id is not None:
        existing = await db.scalar(
            select(CommissionRecord.id).where(
                CommissionRecord.user_id == user_id,
                CommissionRecord.customer_id == customer_id,
            )
        )
        if existing is not None:
            raise LedgerError(f"User {user_id} already has commission {existing} for job {customer_id}")

    commission = CommissionRecord(
        user_id=user_id,
        customer_id=customer_id,
        commission_amount=value,
        build_date=build_date,
        is_paid=is_paid,
        admin_modified=True,
    )
    db.add(commission)
    await db.flush()
    await apply_commission_delta(db, user_id, value)
    return commission


async def adjust_commission(
    db: AsyncSession,
    commission_id: int,
    *,
    amount=None,
    is_paid: Optional[bool] = None,
    build_date: Optional[datetime] = None,
) -> CommissionRecord:
    """Correct a commission by hand.

    The row becomes admin-modified and the automated engine leaves it
    alone until the flag is cleared.
    """
    commission = await db.get(CommissionRecord, commission_id)
    if commission is None:
        raise RecordNotFoundError(f"Commission {commission_id} not found")

    if amount is not None:
        value = _money(amount)
        if value < ZERO:
            raise LedgerError("Commission amount cannot be negative")
        delta = value - _money(commission.commission_amount)
        commission.commission_amount = value
        await apply_commission_delta(db, commission.user_id, delta)
    if is_paid is not None:
        commission.is_paid = is_paid
    if build_date is not None:
        commission.build_date = build_date

    commission.admin_modified = True
    await db.flush()
    logger.info(f"Commission {commission_id} adjusted by admin (amount={commission.commission_amount})")
    return commission


async def clear_admin_flag(db: AsyncSession, commission_id: int) -> CommissionRecord:
    """Hand a corrected commission back to automatic recomputation."""
    commission = await db.get(CommissionRecord, commission_id)
    if commission is None:
        raise RecordNotFoundError(f"Commission {commission_id} not found")
    commission.admin_modified = False
    await db.flush()
    return commission


async def delete_commission(db: AsyncSession, commission_id: int) -> None:
    commission = await db.get(CommissionRecord, commission_id)
    if commission is None:
        raise RecordNotFoundError(f"Commission {commission_id} not found")
    await apply_commission_delta(db, commission.user_id, -_money(commission.commission_amount))
    await db.delete(commission)
    await db.flush()
    logger.info(f"Deleted commission {commission_id} for user {commission.user_id}")
