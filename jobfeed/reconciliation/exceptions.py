"""Reconciliation exceptions."""


class CycleTimeoutError(Exception):
    """Raised when a reconciliation cycle runs past its deadline.

    Raised only at a listing boundary. Listings already applied stay applied;
    removal detection for the remainder of the snapshot never runs, so an
    incomplete seen-set cannot mark listings removed. Change events for the
    work already done travel on ``result`` so they are not lost.
    """

    def __init__(
        self, employer_id: str, processed: int, total: int, phase: str = "apply", result=None
    ):
        self.employer_id = employer_id
        self.processed = processed
        self.total = total
        self.phase = phase
        # ReconciliationResult for the listings applied before the deadline
        self.result = result
        super().__init__(
            f"Reconciliation for {employer_id} exceeded its deadline during {phase} "
            f"after {processed}/{total} listings"
        )
