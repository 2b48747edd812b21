"""Shared test fixtures for the svx_converter test suite.

WHY: Most tests need an audio engine, but the real one shells out to
SoX. An in-memory fake with simple, predictable stand-ins for each stage
lets the plan builder, converter, oracle and CLI be tested anywhere.

HOW: FakeEngine keeps synthesized signals in a dict keyed by path and
writes a small placeholder file so path checks pass. process() applies
each stage with trivial math: channel averaging, linear gain, peak
normalization, nearest-neighbour resampling, identity filters and dither,
and truncation toward zero to 8 bits.

RULES:
- The fake never touches audio file formats; only paths it synthesized
  (or had registered via add_source) can be probed
- Every process() call is recorded in ``calls`` for assertions
- Full-scale float 1.0 maps to sample value 127
"""

from __future__ import annotations

import math
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

import pytest

from svx_converter.container.models import SampleBuffer
from svx_converter.core.plan import (
    Gain,
    MixToMono,
    Normalize,
    ProcessingStage,
    Resample,
    TrimSilence,
)
from svx_converter.engine.base import AudioEngine, EngineFailure, SignalSpec, SourceDescriptor


def _db_to_linear(db: float) -> float:
    return 10 ** (db / 20)


class FakeEngine(AudioEngine):
    """Deterministic in-memory stand-in for the SoX engine."""

    def __init__(self) -> None:
        self._signals: Dict[Path, Tuple[SourceDescriptor, List[List[float]]]] = {}
        self.calls: List[Tuple[SourceDescriptor, List[ProcessingStage], int]] = []

    @property
    def name(self) -> str:
        return "Fake"

    def add_source(
        self,
        path: Path,
        channels: List[List[float]],
        sample_rate: int,
        bit_depth: int = 16,
    ) -> SourceDescriptor:
        path = Path(path)
        path.write_bytes(b"FAKE")
        descriptor = SourceDescriptor(
            path=path,
            sample_rate=sample_rate,
            channels=len(channels),
            bit_depth=bit_depth,
            sample_count=len(channels[0]) if channels else 0,
        )
        self._signals[path] = (descriptor, channels)
        return descriptor

    def probe(self, path: Path) -> SourceDescriptor:
        try:
            return self._signals[Path(path)][0]
        except KeyError:
            raise EngineFailure("Cannot read input file: {}".format(path)) from None

    def synthesize(self, path: Path, spec: SignalSpec) -> SourceDescriptor:
        count = int(round(spec.sample_rate * spec.duration_s))
        amplitude = _db_to_linear(spec.gain_db) if spec.gain_db is not None else 1.0
        mono = [
            amplitude * math.sin(2 * math.pi * spec.frequency_hz * i / spec.sample_rate)
            for i in range(count)
        ]
        return self.add_source(
            path, [list(mono) for _ in range(spec.channels)], spec.sample_rate, spec.bit_depth,
        )

    def process(
        self,
        source: SourceDescriptor,
        stages: Sequence[ProcessingStage],
        target_rate: int,
    ) -> SampleBuffer:
        self.calls.append((source, list(stages), target_rate))
        _, channels = self._signals[source.path]
        signal = [sum(frame) / len(frame) for frame in zip(*channels)]

        for stage in stages:
            if isinstance(stage, MixToMono):
                continue
            if isinstance(stage, TrimSilence):
                threshold = _db_to_linear(stage.threshold_db)
                loud = [i for i, x in enumerate(signal) if abs(x) >= threshold]
                signal = signal[loud[0]:loud[-1] + 1] if loud else []
            elif isinstance(stage, Gain):
                factor = _db_to_linear(stage.db)
                signal = [x * factor for x in signal]
            elif isinstance(stage, Normalize):
                peak = max((abs(x) for x in signal), default=0.0)
                if peak > 0:
                    factor = _db_to_linear(stage.target_db) / peak
                    signal = [x * factor for x in signal]
            elif isinstance(stage, Resample):
                count = int(round(len(signal) * stage.target_rate / stage.source_rate))
                step = stage.source_rate / stage.target_rate
                signal = [signal[min(int(i * step), len(signal) - 1)] for i in range(count)]

        return SampleBuffer.from_samples(
            max(-128, min(127, int(x * 127))) for x in signal
        )


class BrokenEngine(FakeEngine):
    """Fake engine whose process() always fails."""

    def process(self, source, stages, target_rate):
        self.calls.append((source, list(stages), target_rate))
        raise EngineFailure("simulated engine crash", stderr="sox FAIL rate: boom")


class SkipsNormalizeEngine(FakeEngine):
    """Runs every stage except Normalize."""

    def process(self, source, stages, target_rate):
        kept = [stage for stage in stages if not isinstance(stage, Normalize)]
        return super().process(source, kept, target_rate)


class HalfLengthEngine(FakeEngine):
    """Returns only the first half of the converted samples."""

    def process(self, source, stages, target_rate):
        buf = super().process(source, stages, target_rate)
        return SampleBuffer(buf.data[:len(buf) // 2])


class StageBlindEngine(FakeEngine):
    """Fails process() without reporting which stages it was given."""

    def process(self, source, stages, target_rate):
        self.calls.append((source, list(stages), target_rate))
        raise EngineFailure("engine gave up")


class ValueErrorEngine(FakeEngine):
    """Raises a plain ValueError from process(), like a buggy third-party engine."""

    def process(self, source, stages, target_rate):
        self.calls.append((source, list(stages), target_rate))
        raise ValueError("Sample value 300 is outside the signed 8-bit range")


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def broken_engine():
    return BrokenEngine()


@pytest.fixture
def skips_normalize_engine():
    return SkipsNormalizeEngine()


@pytest.fixture
def half_length_engine():
    return HalfLengthEngine()


@pytest.fixture
def stage_blind_engine():
    return StageBlindEngine()


@pytest.fixture
def value_error_engine():
    return ValueErrorEngine()


@pytest.fixture
def stereo_tone(fake_engine, tmp_path):
    """0.05 s 440 Hz stereo tone at 44.1 kHz, registered with the fake engine."""
    spec = SignalSpec(sample_rate=44100, duration_s=0.05, frequency_hz=440, channels=2)
    return fake_engine.synthesize(tmp_path / "tone.wav", spec)
