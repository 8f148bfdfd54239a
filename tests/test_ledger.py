"""
Tests for the balance ledger, payments and admin commission changes.

The invariant checked throughout:
    current_balance == total_commissions_earned - total_payments_received
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select, update

from commission_tracker.models import (
    CommissionRecord,
    PaymentCommissionMapping,
    PaymentType,
    User,
    UserBalance,
)
from commission_tracker.services import ledger
from commission_tracker.services.errors import LedgerError, RecordNotFoundError


async def _make_user(db_session, name="Sam Salesman", role="Salesman"):
    user = User(name=name, role=role, hire_date=date(2022, 1, 1))
    db_session.add(user)
    await db_session.flush()
    return user


def _assert_invariant(balance: UserBalance):
    assert balance.current_balance == balance.total_commissions_earned - balance.total_payments_received


class TestBalanceDeltas:
    @pytest.mark.asyncio
    async def test_balance_created_on_first_read(self, db_session):
        user = await _make_user(db_session)

        balance = await ledger.get_balance(db_session, user.id)

        assert balance.total_commissions_earned == Decimal("0")
        assert balance.current_balance == Decimal("0")

    @pytest.mark.asyncio
    async def test_ensure_balance_is_idempotent(self, db_session):
        user = await _make_user(db_session)

        await ledger.ensure_balance(db_session, user.id)
        await ledger.ensure_balance(db_session, user.id)

        rows = await db_session.execute(select(UserBalance).where(UserBalance.user_id == user.id))
        assert len(rows.scalars().all()) == 1

    @pytest.mark.asyncio
    async def test_invariant_after_mixed_deltas(self, db_session):
        user = await _make_user(db_session)

        await ledger.apply_commission_delta(db_session, user.id, Decimal("1000"))
        await ledger.apply_commission_delta(db_session, user.id, Decimal("250.50"))
        await ledger.apply_payment_delta(db_session, user.id, Decimal("400"))
        await ledger.apply_commission_delta(db_session, user.id, Decimal("-100.50"))

        balance = await ledger.get_balance(db_session, user.id)
        assert balance.total_commissions_earned == Decimal("1150.00")
        assert balance.total_payments_received == Decimal("400.00")
        assert balance.current_balance == Decimal("750.00")
        _assert_invariant(balance)

    @pytest.mark.asyncio
    async def test_apply_deltas_skips_zero(self, db_session):
        first = await _make_user(db_session, name="A")
        second = await _make_user(db_session, name="B")

        applied = await ledger.apply_deltas(
            db_session,
            {second.id: Decimal("20"), first.id: Decimal("0")},
        )

        assert applied == 1
        assert (await ledger.get_balance(db_session, second.id)).current_balance == Decimal("20.00")
        assert (await ledger.get_balance(db_session, first.id)).current_balance == Decimal("0")

    @pytest.mark.asyncio
    async def test_recalculate_heals_drift(self, db_session):
        user = await _make_user(db_session)
        await ledger.create_manual_commission(db_session, user.id, Decimal("500"))
        await ledger.record_payment(db_session, user.id, Decimal("200"), PaymentType.CHECK)

        await db_session.execute(
            update(UserBalance)
            .where(UserBalance.user_id == user.id)
            .values(current_balance=Decimal("9999"))
        )

        balance = await ledger.recalculate_balance(db_session, user.id)
        assert balance.total_commissions_earned == Decimal("500.00")
        assert balance.total_payments_received == Decimal("200.00")
        assert balance.current_balance == Decimal("300.00")


class TestPayments:
    @pytest.mark.asyncio
    async def test_payment_marks_commissions_paid(self, db_session):
        user = await _make_user(db_session)
        commission = await ledger.create_manual_commission(db_session, user.id, Decimal("800"))

        payment = await ledger.record_payment(
            db_session,
            user.id,
            Decimal("800"),
            PaymentType.DIRECT_DEPOSIT,
            commission_ids=[commission.id],
        )

        assert commission.is_paid is True
        mappings = await db_session.execute(
            select(PaymentCommissionMapping).where(PaymentCommissionMapping.payment_id == payment.id)
        )
        assert [m.commission_due_id for m in mappings.scalars().all()] == [commission.id]

        balance = await ledger.get_balance(db_session, user.id)
        assert balance.current_balance == Decimal("0")
        _assert_invariant(balance)

    @pytest.mark.asyncio
    async def test_delete_payment_reverses(self, db_session):
        user = await _make_user(db_session)
        commission = await ledger.create_manual_commission(db_session, user.id, Decimal("800"))
        payment = await ledger.record_payment(
            db_session, user.id, Decimal("300"), PaymentType.CASH, commission_ids=[commission.id]
        )

        await ledger.delete_payment(db_session, payment.id)

        assert commission.is_paid is False
        balance = await ledger.get_balance(db_session, user.id)
        assert balance.total_payments_received == Decimal("0")
        assert balance.current_balance == Decimal("800.00")

    @pytest.mark.asyncio
    async def test_payment_must_be_positive(self, db_session):
        user = await _make_user(db_session)

        with pytest.raises(LedgerError):
            await ledger.record_payment(db_session, user.id, Decimal("0"), PaymentType.CASH)

    @pytest.mark.asyncio
    async def test_payment_for_unknown_user(self, db_session):
        with pytest.raises(RecordNotFoundError):
            await ledger.record_payment(db_session, 999, Decimal("10"), PaymentType.CASH)

    @pytest.mark.asyncio
    async def test_payment_cannot_cover_another_users_commission(self, db_session):
        owner = await _make_user(db_session, name="Owner")
        other = await _make_user(db_session, name="Other")
        commission = await ledger.create_manual_commission(db_session, owner.id, Decimal("100"))

        with pytest.raises(LedgerError):
            await ledger.record_payment(
                db_session, other.id, Decimal("100"), PaymentType.CHECK, commission_ids=[commission.id]
            )

    @pytest.mark.asyncio
    async def test_delete_unknown_payment(self, db_session):
        with pytest.raises(RecordNotFoundError):
            await ledger.delete_payment(db_session, 12345)


class TestAdminCommissionChanges:
    @pytest.mark.asyncio
    async def test_manual_commission_is_admin_modified(self, db_session):
        user = await _make_user(db_session)

        commission = await ledger.create_manual_commission(db_session, user.id, Decimal("250"))

        assert commission.admin_modified is True
        assert (await ledger.get_balance(db_session, user.id)).current_balance == Decimal("250.00")

    @pytest.mark.asyncio
    async def test_negative_manual_commission_rejected(self, db_session):
        user = await _make_user(db_session)

        with pytest.raises(LedgerError):
            await ledger.create_manual_commission(db_session, user.id, Decimal("-1"))

    @pytest.mark.asyncio
    async def test_adjust_applies_difference(self, db_session):
        user = await _make_user(db_session)
        commission = CommissionRecord(user_id=user.id, commission_amount=Decimal("1000"))
        db_session.add(commission)
        await db_session.flush()
        await ledger.apply_commission_delta(db_session, user.id, Decimal("1000"))

        await ledger.adjust_commission(db_session, commission.id, amount=Decimal("850"), is_paid=True)

        assert commission.admin_modified is True
        assert commission.is_paid is True
        balance = await ledger.get_balance(db_session, user.id)
        assert balance.total_commissions_earned == Decimal("850.00")
        _assert_invariant(balance)

    @pytest.mark.asyncio
    async def test_clear_admin_flag(self, db_session):
        user = await _make_user(db_session)
        commission = await ledger.create_manual_commission(db_session, user.id, Decimal("100"))

        await ledger.clear_admin_flag(db_session, commission.id)

        assert commission.admin_modified is False

    @pytest.mark.asyncio
    async def test_delete_commission_reverses(self, db_session):
        user = await _make_user(db_session)
        commission = await ledger.create_manual_commission(db_session, user.id, Decimal("100"))

        await ledger.delete_commission(db_session, commission.id)

        assert await db_session.get(CommissionRecord, commission.id) is None
        assert (await ledger.get_balance(db_session, user.id)).current_balance == Decimal("0")

    @pytest.mark.asyncio
    async def test_adjust_unknown_commission(self, db_session):
        with pytest.raises(RecordNotFoundError):
            await ledger.adjust_commission(db_session, 404, amount=Decimal("1"))
