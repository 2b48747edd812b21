"""Output size estimate and chip-RAM advisory.

WHY: A stock Amiga 500 has 512 KB of chip RAM shared by every sample in
a module. Users should hear about a sample that will eat most of it
before they load it into a tracker, not after.

HOW: estimate_size() scales the source sample count by the rate ratio
using exact integer ceiling division, then compares the 1-byte-per-sample
result against MEMORY_BUDGET_BYTES. Exceeding the budget logs a WARNING
and sets ``advisory``; it never raises.

RULES:
- sample_count = ceil(source_samples * target_rate / source_rate)
- byte_count = sample_count (8-bit mono)
- Advisory only when byte_count > 512000
- A non-positive source rate is a configuration error (InvalidConfig)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from svx_converter.config import MEMORY_BUDGET_BYTES
from svx_converter.core.plan import InvalidConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SizeEstimate:
    """Estimated output size for one conversion."""

    sample_count: int
    byte_count: int
    advisory: Optional[str] = None

    @property
    def exceeds_budget(self) -> bool:
        return self.advisory is not None

    @property
    def kilobytes(self) -> float:
        return self.byte_count / 1024


def estimate_size(
    source_sample_count: int,
    source_rate: int,
    target_rate: int,
    budget_bytes: int = MEMORY_BUDGET_BYTES,
) -> SizeEstimate:
    """Estimate output samples and bytes for a rate conversion.

    Args:
        source_sample_count: Samples per channel in the source.
        source_rate: Source sample rate in Hz.
        target_rate: Output sample rate in Hz.
        budget_bytes: Advisory threshold, 512000 unless overridden.

    Returns:
        SizeEstimate with the advisory text set when over budget.

    Raises:
        InvalidConfig: If either rate is not positive or the count is negative.
    """
    if source_rate <= 0:
        raise InvalidConfig("source_rate must be positive, got {}".format(source_rate))
    if target_rate <= 0:
        raise InvalidConfig("target_rate must be positive, got {}".format(target_rate))
    if source_sample_count < 0:
        raise InvalidConfig(
            "source_sample_count must not be negative, got {}".format(source_sample_count)
        )

    # ceil() in integer arithmetic
    sample_count = -(-source_sample_count * target_rate // source_rate)
    byte_count = sample_count

    advisory = None
    if byte_count > budget_bytes:
        advisory = (
            "Output exceeds {:.0f} KB ({:.1f} KB) and will consume significant "
            "chip RAM on a stock Amiga".format(budget_bytes / 1000, byte_count / 1024)
        )
        logger.warning("%s", advisory)

    return SizeEstimate(sample_count=sample_count, byte_count=byte_count, advisory=advisory)
