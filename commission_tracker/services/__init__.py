"""Business logic services."""

from commission_tracker.services.cache import ReadThroughCache
from commission_tracker.services.commission import calculate_commission, evaluate_commission
from commission_tracker.services.membership import MembershipIndex, load_membership_index
from commission_tracker.services.reconciliation import (
    BatchResult,
    BatchStatus,
    process_batch,
    recalculate_job,
    reconcile,
)

__all__ = [
    "ReadThroughCache",
    "calculate_commission",
    "evaluate_commission",
    "MembershipIndex",
    "load_membership_index",
    "BatchResult",
    "BatchStatus",
    "process_batch",
    "recalculate_job",
    "reconcile",
]
