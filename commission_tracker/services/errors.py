"""Domain exceptions raised by the commission services."""


class CommissionTrackerError(Exception):
    """Base class for domain errors."""


class MembershipError(CommissionTrackerError):
    """Invalid change to team membership history."""


class LedgerError(CommissionTrackerError):
    """Invalid commission, payment or balance operation."""


class JobNotFoundError(CommissionTrackerError):
    def __init__(self, job_id: int):
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class JobNotFinalizedError(CommissionTrackerError):
    def __init__(self, job_id: int, status: str):
        super().__init__(f"Job {job_id} is not Finalized (status={status!r})")
        self.job_id = job_id
        self.status = status


class RecordNotFoundError(CommissionTrackerError):
    """Referenced user, team, commission or payment does not exist."""
