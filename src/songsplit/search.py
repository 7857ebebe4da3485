"""Find the time offset that puts song boundaries on silence.

Boundaries computed from summed song lengths drift from the actual audio by
a roughly constant amount. Assuming some songs start or end quietly, the
right offset is the one that lands as many boundaries as possible on
silence: the minimum, over a grid of candidate offsets, of the summed
volume at every shifted boundary.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from songsplit.constants import DEFAULT_MAX_OFFSET, DEFAULT_MIN_OFFSET, DEFAULT_NUM_OFFSETS
from songsplit.excerpt import AudioExcerpt

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OffsetEstimate:
    """Winning offset plus the mean volume at the shifted boundaries.

    A quality near 0 means the cuts sit on silence. A high value means no
    silent alignment exists (e.g. a gapless live album) and the offset is
    only the least bad candidate.
    """
    offset: float
    quality: float

    def is_confident(self, threshold: float) -> bool:
        return self.quality <= threshold


def candidate_offsets(
    min_offset: float = DEFAULT_MIN_OFFSET,
    max_offset: float = DEFAULT_MAX_OFFSET,
    num_offsets: int = DEFAULT_NUM_OFFSETS,
) -> np.ndarray:
    """``min + i / N * (max - min)`` for ``i`` in ``0 .. N-1``."""
    if num_offsets <= 0:
        raise ValueError(f"num_offsets must be positive, got {num_offsets}")
    if max_offset <= min_offset:
        raise ValueError(
            f"Offset range is empty: min_offset={min_offset}, max_offset={max_offset}"
        )
    return np.arange(num_offsets) / num_offsets * (max_offset - min_offset) + min_offset


def find_cut_offset(
    excerpts: Sequence[AudioExcerpt],
    timestamps: Sequence[float],
    min_offset: float = DEFAULT_MIN_OFFSET,
    max_offset: float = DEFAULT_MAX_OFFSET,
    num_offsets: int = DEFAULT_NUM_OFFSETS,
) -> OffsetEstimate:
    """Grid-search the offset minimising the total volume at all boundaries.

    ``excerpts[i]`` must cover ``timestamps[i] + [min_offset, max_offset]``.
    Ties go to the smallest candidate offset, so identical inputs always
    give identical results.
    """
    if not excerpts:
        raise ValueError("Cannot search for a cut offset without any excerpts")
    if len(excerpts) != len(timestamps):
        raise ValueError(
            f"Need one timestamp per excerpt, got {len(timestamps)} for {len(excerpts)}"
        )

    offsets = candidate_offsets(min_offset, max_offset, num_offsets)
    total_volume = np.zeros(len(offsets))
    for excerpt, timestamp in zip(excerpts, timestamps):
        total_volume += excerpt.volumes_at(timestamp + offsets)

    # argmin returns the first minimum, i.e. a strict "<" scan.
    best = int(np.argmin(total_volume))
    estimate = OffsetEstimate(
        offset=float(offsets[best]),
        quality=float(total_volume[best] / len(excerpts)),
    )
    logger.info(
        "Cut offset %.3fs over %d boundaries, av. volume at cuts: %.3f",
        estimate.offset, len(excerpts), estimate.quality,
    )
    return estimate
