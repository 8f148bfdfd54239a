"""
Role-based commission formulas.

Rules:
- Affiliate Marketer: 5% of job price, capped at $750
- Salesman: in-scope % by tenure tier and lead source, plus 4% of margin added
- Sales Manager: own jobs paid at senior salesman rates (Referral 15%) on the
  job price; team jobs earn an override based on the salesman's tenure
- Supplement Manager: own jobs 8-10% of margin (min $500); team jobs
  2-3% of margin (min $200)
- Supplementer: 6-7% of margin added (min $300)

Tenure is always measured at the job's created date, never "now", so a
recomputation months later produces the same amounts. Everything here is
pure: historical team context is passed in by the caller.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

from dateutil.relativedelta import relativedelta

from commission_tracker.models.customer import LeadSource
from commission_tracker.models.user import CommissionRole
from commission_tracker.services.membership import HistoricalTeamContext, to_utc

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")

# Affiliate
AFFILIATE_RATE = Decimal("0.05")
AFFILIATE_CAP = Decimal("750")

# Salesman
MARGIN_BONUS_RATE = Decimal("0.04")
CANVASSING_COMPANY_DEDUCTION = Decimal("300")
JUNIOR_TENURE_MONTHS = 6
SENIOR_TENURE_MONTHS = 12

# Supplementer / Supplement Manager (appraisal rate, non-appraisal rate, floor)
SUPPLEMENTER_RATES = (Decimal("0.06"), Decimal("0.07"), Decimal("300"))
SUPPLEMENT_MANAGER_OWN_RATES = (Decimal("0.08"), Decimal("0.10"), Decimal("500"))
SUPPLEMENT_MANAGER_OVERRIDE_RATES = (Decimal("0.02"), Decimal("0.03"), Decimal("200"))


class TenureTier(str, Enum):
    JUNIOR = "junior"  # under 6 months
    MID = "mid"        # 6 to 12 months
    SENIOR = "senior"  # over 12 months


SALESMAN_RATES: Dict[TenureTier, Dict[LeadSource, Decimal]] = {
    TenureTier.JUNIOR: {
        LeadSource.CANVASSING_SALESMAN: Decimal("0.10"),
        LeadSource.CANVASSING_COMPANY: Decimal("0.08"),
        LeadSource.AFFILIATE: Decimal("0.06"),
        LeadSource.REFERRAL: Decimal("0.10"),
        LeadSource.OTHER: Decimal("0.08"),
    },
    TenureTier.MID: {
        LeadSource.CANVASSING_SALESMAN: Decimal("0.13"),
        LeadSource.CANVASSING_COMPANY: Decimal("0.10"),
        LeadSource.AFFILIATE: Decimal("0.08"),
        LeadSource.REFERRAL: Decimal("0.10"),
        LeadSource.OTHER: Decimal("0.10"),
    },
    TenureTier.SENIOR: {
        LeadSource.CANVASSING_SALESMAN: Decimal("0.15"),
        LeadSource.CANVASSING_COMPANY: Decimal("0.12"),
        LeadSource.AFFILIATE: Decimal("0.10"),
        LeadSource.REFERRAL: Decimal("0.12"),
        LeadSource.OTHER: Decimal("0.12"),
    },
}

# Sales manager working a job as its own salesman. Referral pays like
# Canvassing - Salesman here, unlike the senior salesman table.
SALES_MANAGER_OWN_RATES: Dict[LeadSource, Decimal] = {
    **SALESMAN_RATES[TenureTier.SENIOR],
    LeadSource.REFERRAL: Decimal("0.15"),
}

# Sales manager override on a team member's job, by the member's tenure
SALES_MANAGER_OVERRIDE_RATES = (
    (6, Decimal("0.04")),
    (12, Decimal("0.02")),
    (None, Decimal("0.03")),
)


def months_between(start: Union[date, datetime], end: Union[date, datetime]) -> int:
    """Whole calendar months from `start` to `end` (negative if end is earlier)."""
    delta = relativedelta(to_utc(end).date(), to_utc(start).date())
    return delta.years * 12 + delta.months


def tenure_months(hire_date: Optional[date], as_of: Optional[Union[date, datetime]]) -> int:
    """Tenure in whole months at `as_of`. Unknown dates count as zero."""
    if hire_date is None or as_of is None:
        return 0
    return max(0, months_between(hire_date, as_of))


def tenure_tier(months: int) -> TenureTier:
    """Salesman tier. Exactly six months already counts as the 6-12 tier."""
    if months < JUNIOR_TENURE_MONTHS:
        return TenureTier.JUNIOR
    if months <= SENIOR_TENURE_MONTHS:
        return TenureTier.MID
    return TenureTier.SENIOR


def sales_manager_override_rate(member_tenure_months: int) -> Decimal:
    for limit, rate in SALES_MANAGER_OVERRIDE_RATES:
        if limit is None or member_tenure_months <= limit:
            return rate
    raise AssertionError("unreachable")


def salesman_inscope(tier: TenureTier, lead_source: LeadSource, price: Decimal) -> Decimal:
    amount = SALESMAN_RATES[tier][lead_source] * price
    if lead_source is LeadSource.CANVASSING_COMPANY:
        amount -= CANVASSING_COMPANY_DEDUCTION
    return amount


@dataclass(frozen=True)
class UserProfile:
    """Detached copy of the user fields the formulas read."""
    id: int
    name: str
    role: str
    hire_date: Optional[date] = None

    @classmethod
    def from_row(cls, user) -> "UserProfile":
        return cls(id=user.id, name=user.name, role=user.role, hire_date=user.hire_date)


@dataclass
class CommissionOutcome:
    amount: Decimal
    role: CommissionRole
    warnings: List[str] = field(default_factory=list)


@dataclass
class _Inputs:
    """Derived values shared by every role formula."""
    user_id: int
    hire_date: Optional[date]
    job: object
    lead_source: LeadSource
    initial_scope_price: Decimal
    total_job_price: Decimal
    created_at: Optional[datetime]
    going_to_appraisal: bool
    context: Optional[HistoricalTeamContext]

    @property
    def margin_added(self) -> Decimal:
        return self.total_job_price - self.initial_scope_price

    @property
    def effective_price(self) -> Decimal:
        # Retail jobs have no separate scope price
        return self.initial_scope_price if self.initial_scope_price != ZERO else self.total_job_price

    @property
    def tenure_months(self) -> int:
        return tenure_months(self.hire_date, self.created_at)

    @property
    def is_explicitly_assigned(self) -> bool:
        return self.user_id in (
            getattr(self.job, "salesman_id", None),
            getattr(self.job, "supplementer_id", None),
            getattr(self.job, "manager_id", None),
            getattr(self.job, "supplement_manager_id", None),
        )

    @property
    def created_before_hire(self) -> bool:
        if self.created_at is None or self.hire_date is None:
            return False
        return self.created_at < to_utc(self.hire_date)

    @property
    def skip_override(self) -> bool:
        return self.created_before_hire and not self.is_explicitly_assigned

    def appraisal_rate(self, rates: tuple) -> Decimal:
        appraisal, standard, _ = rates
        return appraisal if self.going_to_appraisal else standard


def _affiliate(inputs: _Inputs) -> Decimal:
    return min(AFFILIATE_RATE * inputs.total_job_price, AFFILIATE_CAP)


def _salesman(inputs: _Inputs) -> Decimal:
    inscope = salesman_inscope(tenure_tier(inputs.tenure_months), inputs.lead_source, inputs.effective_price)
    margin_bonus = ZERO
    if inputs.initial_scope_price != ZERO and inputs.total_job_price != ZERO:
        margin_bonus = MARGIN_BONUS_RATE * inputs.margin_added
    return inscope + margin_bonus


def _sales_manager(inputs: _Inputs) -> Decimal:
    if inputs.skip_override:
        return ZERO

    salesman_id = getattr(inputs.job, "salesman_id", None)
    if salesman_id == inputs.user_id:
        amount = SALES_MANAGER_OWN_RATES[inputs.lead_source] * inputs.total_job_price
        if inputs.lead_source is LeadSource.CANVASSING_COMPANY:
            amount -= CANVASSING_COMPANY_DEDUCTION
        return amount

    if inputs.context is None:
        return ZERO
    member = inputs.context.find_teammate(salesman_id)
    if member is None:
        return ZERO

    member_tenure = tenure_months(member.hire_date, inputs.created_at)
    return sales_manager_override_rate(member_tenure) * inputs.total_job_price


def _supplement_manager(inputs: _Inputs) -> Decimal:
    if inputs.skip_override:
        return ZERO

    supplementer_id = getattr(inputs.job, "supplementer_id", None)
    if supplementer_id == inputs.user_id:
        rates = SUPPLEMENT_MANAGER_OWN_RATES
    else:
        if inputs.context is None or inputs.context.find_teammate(supplementer_id) is None:
            return ZERO
        rates = SUPPLEMENT_MANAGER_OVERRIDE_RATES

    return max(inputs.appraisal_rate(rates) * inputs.margin_added, rates[2])


def _supplementer(inputs: _Inputs) -> Decimal:
    rates = SUPPLEMENTER_RATES
    return max(inputs.appraisal_rate(rates) * inputs.margin_added, rates[2])


FORMULAS: Dict[CommissionRole, Callable[[_Inputs], Decimal]] = {
    CommissionRole.AFFILIATE_MARKETER: _affiliate,
    CommissionRole.SALESMAN: _salesman,
    CommissionRole.SALES_MANAGER: _sales_manager,
    CommissionRole.SUPPLEMENT_MANAGER: _supplement_manager,
    CommissionRole.SUPPLEMENTER: _supplementer,
}


def to_money(value, warnings: Optional[List[str]] = None, label: str = "amount") -> Decimal:
    """Coerce a price-like value to a finite Decimal. Missing → 0."""
    if value is None:
        return ZERO
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        amount = Decimal("NaN")
    if not amount.is_finite():
        if warnings is not None:
            warnings.append(f"non-finite {label} {value!r} treated as 0")
        return ZERO
    return amount


def _role_of(user) -> CommissionRole:
    role = getattr(user, "role", None)
    if isinstance(role, CommissionRole):
        return role
    return CommissionRole.from_value(role)


def evaluate_commission(
    user,
    job,
    context: Optional[HistoricalTeamContext] = None,
) -> CommissionOutcome:
    """Compute what `user` earns on `job`.

    Args:
        user: Object with id, role and hire_date
        job: Customer-like object (prices, lead_source, created_date,
            going_to_appraisal and the role assignment ids)
        context: The user's team membership and team snapshot at the job's
            created date, or None when they had no team then

    Returns:
        CommissionOutcome with a non-negative amount rounded to cents and any
        data-quality warnings
    """
    role = _role_of(user)
    warnings: List[str] = []

    initial_scope = to_money(getattr(job, "initial_scope_price", None), warnings, "initial_scope_price")
    total = to_money(getattr(job, "total_job_price", None), warnings, "total_job_price")
    if initial_scope == ZERO and total == ZERO:
        return CommissionOutcome(amount=ZERO, role=role, warnings=warnings)

    formula = FORMULAS.get(role)
    if formula is None:
        message = f"unhandled role {getattr(user, 'role', None)!r} for user {getattr(user, 'id', None)}"
        logger.warning(f"Commission skipped: {message}")
        warnings.append(message)
        return CommissionOutcome(amount=ZERO, role=role, warnings=warnings)

    created_date = getattr(job, "created_date", None)
    if created_date is None:
        warnings.append("job has no created date; tenure treated as 0")

    inputs = _Inputs(
        user_id=getattr(user, "id", None),
        hire_date=getattr(user, "hire_date", None),
        job=job,
        lead_source=LeadSource.from_value(getattr(job, "lead_source", None)),
        initial_scope_price=initial_scope,
        total_job_price=total,
        created_at=to_utc(created_date) if created_date is not None else None,
        going_to_appraisal=bool(getattr(job, "going_to_appraisal", False)),
        context=context,
    )

    raw = formula(inputs)
    if not raw.is_finite() or raw < ZERO:
        warnings.append(f"computed amount {raw} coerced to 0")
        return CommissionOutcome(amount=ZERO, role=role, warnings=warnings)

    return CommissionOutcome(
        amount=raw.quantize(CENT, rounding=ROUND_HALF_UP),
        role=role,
        warnings=warnings,
    )


def calculate_commission(
    user,
    job,
    context: Optional[HistoricalTeamContext] = None,
) -> Decimal:
    """Commission amount only; see evaluate_commission."""
    return evaluate_commission(user, job, context).amount
