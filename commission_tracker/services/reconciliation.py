"""
Commission reconciliation for finalized jobs.

A batch turns each (job, assigned user) pair into a task, computes what the
user should earn, compares it with the stored commission row and produces
creates, updates and one folded balance delta per user. Planning is pure
(`reconcile`); `process_batch` does the bulk loading and the single
transactional write.

Rows flagged admin_modified are never recomputed. Running the same batch
twice produces no writes the second time.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from commission_tracker.config import settings
from commission_tracker.models import ROLE_SLOTS, CommissionRecord, Customer, JobStatus, User
from commission_tracker.services.commission import ZERO, evaluate_commission, to_money
from commission_tracker.services.errors import JobNotFinalizedError, JobNotFoundError
from commission_tracker.services.ledger import apply_deltas
from commission_tracker.services.membership import MembershipIndex, load_membership_index

logger = logging.getLogger(__name__)

# Differences at or below one cent are not worth a write
UPDATE_TOLERANCE = Decimal("0.01")


class BatchStatus(str, Enum):
    ALL_SUCCEEDED = "all_succeeded"
    PARTIAL_SUCCESS = "partial_success"
    HARD_FAILURE = "hard_failure"


@dataclass(frozen=True)
class CommissionTask:
    job: object
    user_id: int
    slot: str

    @property
    def job_id(self) -> int:
        return self.job.id


@dataclass(frozen=True)
class CommissionCreate:
    user_id: int
    customer_id: int
    amount: Decimal
    build_date: Optional[datetime] = None


@dataclass(frozen=True)
class CommissionUpdate:
    commission_id: int
    user_id: int
    customer_id: int
    old_amount: Decimal
    new_amount: Decimal
    build_date: Optional[datetime] = None

    @property
    def delta(self) -> Decimal:
        return self.new_amount - self.old_amount


@dataclass(frozen=True)
class TaskError:
    job_id: Optional[int]
    user_id: Optional[int]
    message: str


@dataclass
class ReconciliationPlan:
    to_create: List[CommissionCreate] = field(default_factory=list)
    to_update: List[CommissionUpdate] = field(default_factory=list)
    balance_deltas: Dict[int, Decimal] = field(default_factory=dict)
    errors: List[TaskError] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    skipped_admin: int = 0
    tasks_total: int = 0
    tasks_succeeded: int = 0

    @property
    def net_delta(self) -> Decimal:
        return sum(self.balance_deltas.values(), ZERO)


@dataclass
class BatchResult:
    status: BatchStatus
    jobs: int = 0
    tasks: int = 0
    succeeded: int = 0
    created: int = 0
    updated: int = 0
    skipped_admin: int = 0
    errors: List[TaskError] = field(default_factory=list)
    errors_truncated: int = 0
    warnings: List[str] = field(default_factory=list)
    balance_deltas: Dict[int, Decimal] = field(default_factory=dict)


def enumerate_tasks(job) -> List[CommissionTask]:
    """One task per distinct user assigned to the job, in slot order."""
    tasks: List[CommissionTask] = []
    seen = set()
    for slot in ROLE_SLOTS:
        user_id = getattr(job, slot, None)
        if user_id is None or user_id in seen:
            continue
        seen.add(user_id)
        tasks.append(CommissionTask(job=job, user_id=user_id, slot=slot))
    return tasks


def fold_deltas(
    creates: Iterable[CommissionCreate],
    updates: Iterable[CommissionUpdate],
) -> Dict[int, Decimal]:
    """Sum balance changes per user, dropping users whose net change is zero."""
    totals: Dict[int, Decimal] = defaultdict(lambda: ZERO)
    for op in creates:
        totals[op.user_id] += op.amount
    for op in updates:
        totals[op.user_id] += op.delta
    return {user_id: totals[user_id] for user_id in sorted(totals) if totals[user_id] != ZERO}


def reconcile(
    jobs: Iterable,
    users: Mapping[int, object],
    existing: Mapping[Tuple[int, int], object],
    index: MembershipIndex,
) -> ReconciliationPlan:
    """Plan the commission writes for a set of jobs.

    Args:
        jobs: Customer-like objects
        users: User-like objects by id
        existing: Stored commission rows keyed by (customer_id, user_id)
        index: Membership index covering every assigned user

    Returns:
        ReconciliationPlan; nothing is written
    """
    plan = ReconciliationPlan()

    for job in jobs:
        tasks = enumerate_tasks(job)
        plan.tasks_total += len(tasks)

        if getattr(job, "status", None) != JobStatus.FINALIZED.value:
            for task in tasks:
                plan.errors.append(
                    TaskError(job.id, task.user_id, f"job status {job.status!r} is not Finalized")
                )
            continue

        for task in tasks:
            row = existing.get((job.id, task.user_id))
            if row is not None and row.admin_modified:
                plan.skipped_admin += 1
                plan.tasks_succeeded += 1
                continue

            user = users.get(task.user_id)
            if user is None:
                logger.warning(f"Job {job.id}: {task.slot} user {task.user_id} not found")
                plan.errors.append(TaskError(job.id, task.user_id, f"user {task.user_id} not found"))
                continue

            try:
                context = None
                created_date = getattr(job, "created_date", None)
                if created_date is not None:
                    context = index.historical_team_context_for(task.user_id, created_date)
                outcome = evaluate_commission(user, job, context)
            except (ArithmeticError, TypeError, ValueError) as e:
                logger.warning(f"Job {job.id}: commission for user {task.user_id} failed: {e}")
                plan.errors.append(TaskError(job.id, task.user_id, str(e)))
                continue

            plan.warnings.extend(f"job {job.id} user {task.user_id}: {w}" for w in outcome.warnings)
            plan.tasks_succeeded += 1
            amount = outcome.amount

            if row is None:
                if amount > ZERO:
                    plan.to_create.append(
                        CommissionCreate(
                            user_id=task.user_id,
                            customer_id=job.id,
                            amount=amount,
                            build_date=getattr(job, "build_date", None),
                        )
                    )
                continue

            old_amount = to_money(row.commission_amount)
            if abs(amount - old_amount) > UPDATE_TOLERANCE:
                plan.to_update.append(
                    CommissionUpdate(
                        commission_id=row.id,
                        user_id=task.user_id,
                        customer_id=job.id,
                        old_amount=old_amount,
                        new_amount=amount,
                        build_date=getattr(job, "build_date", None),
                    )
                )

    plan.balance_deltas = fold_deltas(plan.to_create, plan.to_update)
    return plan


# ── Persistence ───────────────────────────────────────────


async def _load_jobs(db: AsyncSession, job_ids: Optional[Sequence[int]]) -> List[Customer]:
    query = select(Customer).order_by(Customer.id)
    if job_ids is None:
        query = query.where(Customer.status == JobStatus.FINALIZED.value)
    else:
        query = query.where(Customer.id.in_(job_ids))
    result = await db.execute(query)
    return list(result.scalars().all())


async def _load_users(db: AsyncSession, user_ids: Iterable[int]) -> Dict[int, User]:
    ids = set(user_ids)
    if not ids:
        return {}
    result = await db.execute(select(User).where(User.id.in_(ids)))
    return {user.id: user for user in result.scalars().all()}


async def _load_existing(db: AsyncSession, job_ids: Iterable[int]) -> Dict[Tuple[int, int], CommissionRecord]:
    ids = set(job_ids)
    if not ids:
        return {}
    result = await db.execute(
        select(CommissionRecord)
        .where(CommissionRecord.customer_id.in_(ids))
        .order_by(CommissionRecord.id)
        .with_for_update()
    )
    return {(row.customer_id, row.user_id): row for row in result.scalars().all()}


def _finish(result: BatchResult, errors: List[TaskError]) -> BatchResult:
    limit = settings.batch_error_limit
    result.errors = errors[:limit]
    result.errors_truncated = max(0, len(errors) - limit)
    return result


async def process_batch(db: AsyncSession, job_ids: Optional[Sequence[int]] = None) -> BatchResult:
    """Reconcile commissions for `job_ids` (all Finalized jobs when None).

    Everything is written in one transaction which is committed here; on a
    storage error the whole batch is rolled back.
    """
    jobs: List[Customer] = []
    try:
        jobs = await _load_jobs(db, job_ids)
        missing = [] if job_ids is None else sorted(set(job_ids) - {job.id for job in jobs})

        assigned = {task.user_id for job in jobs for task in enumerate_tasks(job)}
        users = await _load_users(db, assigned)
        existing = await _load_existing(db, (job.id for job in jobs))
        index = await load_membership_index(db, assigned)

        plan = reconcile(jobs, users, existing, index)
        errors = [TaskError(job_id, None, f"job {job_id} not found") for job_id in missing] + plan.errors

        for op in plan.to_create:
            db.add(
                CommissionRecord(
                    user_id=op.user_id,
                    customer_id=op.customer_id,
                    commission_amount=op.amount,
                    build_date=op.build_date,
                    admin_modified=False,
                )
            )
        if plan.to_create:
            await db.flush()

        applied_updates: List[CommissionUpdate] = []
        skipped_admin = plan.skipped_admin
        for op in plan.to_update:
            values = {"commission_amount": op.new_amount}
            if op.build_date is not None:
                values["build_date"] = op.build_date
            outcome = await db.execute(
                update(CommissionRecord)
                .where(
                    CommissionRecord.id == op.commission_id,
                    CommissionRecord.admin_modified.is_(False),
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if outcome.rowcount == 1:
                applied_updates.append(op)
                db.expire(existing[(op.customer_id, op.user_id)])
            else:
                # Flagged by an admin after the rows were loaded
                skipped_admin += 1

        deltas = fold_deltas(plan.to_create, applied_updates)
        await apply_deltas(db, deltas)
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception(f"Commission batch failed and was rolled back (job_ids={job_ids})")
        return BatchResult(status=BatchStatus.HARD_FAILURE, jobs=len(jobs))

    status = BatchStatus.PARTIAL_SUCCESS if errors else BatchStatus.ALL_SUCCEEDED
    result = BatchResult(
        status=status,
        jobs=len(jobs),
        tasks=plan.tasks_total,
        succeeded=plan.tasks_succeeded,
        created=len(plan.to_create),
        updated=len(applied_updates),
        skipped_admin=skipped_admin,
        warnings=plan.warnings,
        balance_deltas=deltas,
    )
    logger.info(
        f"Commission batch {status.value}: jobs={result.jobs} tasks={result.tasks} "
        f"created={result.created} updated={result.updated} skipped_admin={result.skipped_admin} "
        f"errors={len(errors)}"
    )
    return _finish(result, errors)


async def recalculate_job(db: AsyncSession, job_id: int) -> BatchResult:
    """Reconcile a single job, rejecting unknown or non-Finalized jobs."""
    job = await db.get(Customer, job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    if not job.is_finalized:
        raise JobNotFinalizedError(job_id, job.status)
    return await process_batch(db, [job_id])


@dataclass
class CommissionPreview:
    job_id: int
    amount: Decimal = ZERO
    customer_name: Optional[str] = None
    status: Optional[str] = None
    total_job_price: Optional[Decimal] = None
    initial_scope_price: Optional[Decimal] = None
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None


async def preview_commissions(
    db: AsyncSession,
    user,
    job_ids: Sequence[int],
    index: Optional[MembershipIndex] = None,
) -> List[CommissionPreview]:
    """What `user` would earn on each job, regardless of job status.

    Read-only. `index` may be supplied from a cache; otherwise it is loaded
    for the user's teams.
    """
    if index is None:
        index = await load_membership_index(db, [user.id])

    result = await db.execute(select(Customer).where(Customer.id.in_(set(job_ids))))
    jobs = {job.id: job for job in result.scalars().all()}

    previews: List[CommissionPreview] = []
    for job_id in job_ids:
        job = jobs.get(job_id)
        if job is None:
            previews.append(CommissionPreview(job_id=job_id, error="Customer not found"))
            continue

        context = index.historical_team_context_for(user.id, job.created_date)
        outcome = evaluate_commission(user, job, context)
        previews.append(
            CommissionPreview(
                job_id=job.id,
                amount=outcome.amount,
                customer_name=job.customer_name,
                status=job.status,
                total_job_price=job.total_job_price,
                initial_scope_price=job.initial_scope_price,
                warnings=outcome.warnings,
            )
        )
    return previews
