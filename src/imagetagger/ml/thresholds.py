"""Per-category confidence thresholding.

Two policies are supported: a fixed caller-supplied cutoff, and MCut
(maximum cut), which places the cutoff at the midpoint of the largest drop
between consecutive scores sorted in descending order.

Reference:
    Largeron, C., Moulin, C., & Gery, M. (2012). MCut: A Thresholding Strategy
    for Multi-label Classification. In 11th International Symposium, IDA 2012.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

DEFAULT_GENERAL_THRESHOLD: float = 0.35
DEFAULT_CHARACTER_THRESHOLD: float = 0.85
CHARACTER_MCUT_FLOOR: float = 0.15

ScoredTag = tuple[str, float]


def mcut_threshold(scores: Sequence[float]) -> float:
    """Return the MCut threshold for ``scores``.

    With fewer than two scores there is no gap to cut at and ``0.0`` is
    returned, so any positive score survives.
    """
    if len(scores) < 2:
        return 0.0
    ordered = sorted(scores, reverse=True)
    diffs = [ordered[i] - ordered[i + 1] for i in range(len(ordered) - 1)]
    t = max(range(len(diffs)), key=diffs.__getitem__)
    return (ordered[t] + ordered[t + 1]) / 2


def select_tags(
    candidates: Sequence[ScoredTag],
    threshold: float,
    *,
    adaptive: bool = False,
    floor: float | None = None,
) -> tuple[list[ScoredTag], float]:
    """Keep candidates scoring strictly above the threshold.

    Args:
        candidates: ``(name, score)`` pairs in catalog order.
        threshold: Fixed cutoff, ignored when ``adaptive`` is set.
        adaptive: Compute the cutoff with MCut instead.
        floor: Lower bound applied to the MCut cutoff.

    Returns:
        The surviving pairs in their original order, and the cutoff used.
    """
    if adaptive:
        threshold = mcut_threshold([score for _, score in candidates])
        if floor is not None:
            threshold = max(threshold, floor)
        logger.debug("Using MCut threshold: %.3f", threshold)
    kept = [(name, score) for name, score in candidates if score > threshold]
    return kept, threshold
