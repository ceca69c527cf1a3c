"""
Notification gate for qualification score changes.

Decides whether a score update is worth telling the sales team about.
Call it exactly once per qualification cycle, with the score captured
*before* the cycle ran.
"""

import logging
from typing import Dict, Iterable, Optional, Set

logger = logging.getLogger(__name__)


def should_notify(
    current_score: int,
    previous_score: Optional[int],
    thresholds: Iterable[int],
    significant_change: int,
) -> bool:
    """
    Decide whether a score change warrants a notification.

    Rules, in order:
    1. previous score known and |current - previous| >= significant_change
    2. some threshold t with previous < t <= current
    3. otherwise no

    An unknown previous score counts as 0 for threshold crossings.
    """
    if previous_score is not None and abs(current_score - previous_score) >= significant_change:
        return True

    baseline = previous_score if previous_score is not None else 0
    return any(baseline < t <= current_score for t in thresholds)


class NotificationGate:
    """
    Per-session gate with optional hysteresis.

    With ``rearm_margin == 0`` this is exactly ``should_notify``: a score
    oscillating across a threshold announces every upward crossing. With a
    positive margin a threshold that has been announced for a session stays
    quiet until the score falls to ``threshold - rearm_margin`` or below.
    Large jumps (rule 1) are never suppressed.

    Args:
        thresholds: Scores whose upward crossing triggers a notification
        significant_change: Absolute score delta that always notifies
        rearm_margin: Points the score must drop below a threshold to re-arm it
    """

    def __init__(self, thresholds: Iterable[int], significant_change: int, rearm_margin: int = 0):
        self.thresholds = sorted(thresholds)
        self.significant_change = significant_change
        self.rearm_margin = rearm_margin
        self._announced: Dict[str, Set[int]] = {}

    def evaluate(self, session_id: str, current_score: int, previous_score: Optional[int]) -> bool:
        """Apply the gate for one qualification cycle of ``session_id``."""
        # Only hysteresis needs memory of announced thresholds
        announced = self._announced.setdefault(session_id, set()) if self.rearm_margin > 0 else set()

        # Re-arm thresholds the score has fallen far enough below
        for threshold in list(announced):
            if current_score <= threshold - self.rearm_margin and current_score < threshold:
                announced.discard(threshold)

        crossed = {
            t for t in self.thresholds
            if (previous_score if previous_score is not None else 0) < t <= current_score
        }
        big_jump = (
            previous_score is not None
            and abs(current_score - previous_score) >= self.significant_change
        )

        if self.rearm_margin > 0:
            fresh = crossed - announced
        else:
            fresh = crossed

        announced.update(crossed)

        if big_jump or fresh:
            logger.debug(
                f"Notify for {session_id}: {previous_score} -> {current_score} "
                f"(crossed={sorted(fresh)}, big_jump={big_jump})"
            )
            return True
        return False

    def reset(self, session_id: Optional[str] = None) -> None:
        if session_id is None:
            self._announced.clear()
        else:
            self._announced.pop(session_id, None)
