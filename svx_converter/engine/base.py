"""Capability interface for the external audio engine.

WHY: Resampling, filtering, normalization and dither are real DSP and
stay out of this package. The converter only needs to ask an engine
three things: what is this file, run these stages on it, and (for the
self-test) make me a test signal. Keeping that behind an ABC lets the
tests swap in a deterministic fake.

HOW: AudioEngine declares probe(), process() and synthesize().
SourceDescriptor and SignalSpec are the plain records passed across the
boundary. EngineFailure wraps anything that goes wrong on the far side.

RULES:
- process() returns 8-bit signed mono at the requested target rate
- Engines must anti-alias intrinsically when downsampling
- Calls are synchronous and may block for as long as the source is long
- Engine errors are never retried here; they surface as EngineFailure
  with the stage list attached
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from svx_converter.container.models import SampleBuffer
from svx_converter.core.plan import ProcessingStage, describe_stage


@dataclass(frozen=True)
class SourceDescriptor:
    """What the engine knows about an input file.

    RULES:
    - sample_count is per channel
    - bit_depth is the stored precision (e.g. 16, 24, 32)
    """

    path: Path
    sample_rate: int
    channels: int
    bit_depth: int
    sample_count: int

    @property
    def duration_s(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self.sample_count / self.sample_rate


@dataclass(frozen=True)
class SignalSpec:
    """A synthetic test signal for the self-test oracle.

    WHY: The oracle checks analytic properties (length, peak, silence),
    so it needs signals whose shape it knows in advance.

    RULES:
    - frequency_hz 0 produces silence
    - gain_db is applied after synthesis (e.g. -40 for a quiet tone)
    - floating_point selects 32-bit float storage instead of integer PCM
    """

    sample_rate: int
    duration_s: float
    frequency_hz: float = 440.0
    bit_depth: int = 16
    channels: int = 1
    gain_db: Optional[float] = None
    floating_point: bool = False


class EngineFailure(Exception):
    """Raised when the external audio engine cannot complete a request.

    WHY: The core does not interpret engine errors, but whoever reads
    the error needs to know what was being attempted.

    HOW: Carries the stage list that was submitted and any diagnostic
    output the engine produced.

    RULES:
    - stages is empty for probe/synthesize failures
    - stderr is the engine's own diagnostic text, possibly empty
    """

    def __init__(
        self,
        message: str,
        stages: Sequence[ProcessingStage] = (),
        stderr: str = "",
    ) -> None:
        self.message = message
        self.stages: List[ProcessingStage] = list(stages)
        self.stderr = stderr
        detail = message
        if self.stages:
            detail += " [stages: {}]".format("; ".join(describe_stage(s) for s in self.stages))
        if stderr:
            detail += ": {}".format(stderr.strip())
        super().__init__(detail)


class AudioEngine(ABC):
    """Abstract base for engines that execute conversion plans.

    To add a new engine:
    1. Subclass AudioEngine
    2. Implement probe(), process() and synthesize()
    3. Wrap every failure in EngineFailure
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable engine name, e.g. 'SoX'."""

    @abstractmethod
    def probe(self, path: Path) -> SourceDescriptor:
        """Read rate, channels, bit depth and length of an input file."""

    @abstractmethod
    def process(
        self,
        source: SourceDescriptor,
        stages: Sequence[ProcessingStage],
        target_rate: int,
    ) -> SampleBuffer:
        """Run ``stages`` over ``source`` and return 8-bit mono samples.

        Args:
            source: The probed input.
            stages: The plan from build_plan(), in execution order.
            target_rate: Output rate in Hz.

        Returns:
            The converted samples.
        """

    @abstractmethod
    def synthesize(self, path: Path, spec: SignalSpec) -> SourceDescriptor:
        """Write a synthetic signal to ``path`` and return its descriptor."""
