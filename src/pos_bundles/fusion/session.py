"""Interactive merge flow.

    IDLE -> DETECTING_DUPLICATES -> AWAITING_USER_CHOICE -> MERGING -> PERSISTED

``AWAITING_USER_CHOICE`` is entered only when the batch has internal
duplicates; otherwise ``detect`` merges straight away without elimination.
"""

from __future__ import annotations

import enum
import logging

from pos_bundles.exceptions import MergeStateError
from pos_bundles.fusion.keys import DuplicateReport
from pos_bundles.fusion.merge import MergeResult
from pos_bundles.fusion.service import MonthlyFusionService
from pos_bundles.types import SalesLine

logger = logging.getLogger(__name__)


class MergeState(enum.Enum):
    IDLE = "idle"
    DETECTING_DUPLICATES = "detecting_duplicates"
    AWAITING_USER_CHOICE = "awaiting_user_choice"
    MERGING = "merging"
    PERSISTED = "persisted"


class MergeSession:
    def __init__(self, service: MonthlyFusionService, month: str | None = None) -> None:
        self.service = service
        self.month = month
        self.state = MergeState.IDLE
        self.report: DuplicateReport | None = None
        self.result: MergeResult | None = None
        self._batch: list[SalesLine] = []

    def detect(
        self, batch: list[SalesLine], eliminate_duplicates: bool = False
    ) -> DuplicateReport:
        """Start a merge: report internal duplicates of ``batch``.

        Allowed from IDLE or PERSISTED (a new merge). A batch without internal
        duplicates is merged at once, checking against the stored dataset
        when ``eliminate_duplicates`` is set.
        """
        if self.state not in (MergeState.IDLE, MergeState.PERSISTED):
            raise MergeStateError(f"Cannot start a merge while {self.state.value}")
        self.state = MergeState.DETECTING_DUPLICATES
        self._batch = list(batch)
        self.result = None
        self.report = self.service.detect_duplicates(self._batch)
        if self.report.has_duplicates:
            self.state = MergeState.AWAITING_USER_CHOICE
        else:
            self._merge(eliminate_duplicates)
        return self.report

    def confirm(self, eliminate_duplicates: bool) -> MergeResult:
        """Merge with the user's choice about duplicates."""
        if self.state is not MergeState.AWAITING_USER_CHOICE:
            raise MergeStateError(f"Nothing to confirm while {self.state.value}")
        return self._merge(eliminate_duplicates)

    def cancel(self) -> None:
        if self.state is not MergeState.AWAITING_USER_CHOICE:
            raise MergeStateError(f"Nothing to cancel while {self.state.value}")
        logger.info("Merge cancelled")
        self._reset()

    def _reset(self) -> None:
        self.state = MergeState.IDLE
        self._batch = []

    def _merge(self, eliminate_duplicates: bool) -> MergeResult:
        self.state = MergeState.MERGING
        self.result = self.service.merge(self._batch, eliminate_duplicates, month=self.month)
        if self.result.success:
            self.state = MergeState.PERSISTED
            self._batch = []
        else:
            logger.error("Merge failed: %s", self.result.message)
            self._reset()
        return self.result
