"""Self-test oracle: synthetic signals through the full conversion path.

WHY: A converter that writes a subtly wrong header or the wrong sample
count still produces a file; only a tracker refusing it would tell you.
The oracle feeds known signals through the real engine, plan builder
and encoder, decodes the result and checks structural and numeric
properties it can predict analytically.

HOW: Groups of checks, one method each; the rate group runs once per
target rate. A group synthesizes its input through the engine,
converts it with convert_file() and inspects the bytes with the
decoder. Every check is recorded as a CheckResult and handed to the
reporter. A group that raises is recorded as one failed check under
the group's name, and the remaining groups still run.

RULES:
- Accumulate and report, never fail fast
- Any exception from a group, expected or not, becomes a failed check;
  unexpected ones are also logged with their traceback
- run() returns the number of failed checks (0 means all passed)
- Inputs and outputs live under the caller's workdir only
- The oracle does not validate output naming, only that any name encodes
"""

from __future__ import annotations

import functools
import logging
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from svx_converter.container.decoder import decode_8svx, read_form_size
from svx_converter.container.encoder import write_8svx
from svx_converter.container.models import (
    BODY_TAG,
    FORM_TAG,
    FORM_TYPE_TAG,
    HEADER_CHUNK_SIZE,
    HEADER_REGION_SIZE,
    HEADER_TAG,
    UNITY_VOLUME,
    ContainerMetadata,
    MalformedContainer,
    SampleBuffer,
)
from svx_converter.core.converter import ConversionOptions, convert_file
from svx_converter.core.plan import InvalidConfig
from svx_converter.engine.base import AudioEngine, EngineFailure, SignalSpec

logger = logging.getLogger(__name__)

RATE_FIDELITY_RATES = (8363, 16726, 22050)
RATE_TOLERANCE = 0.10
NORMALIZED_PEAK_FLOOR = 100
SILENCE_PEAK_CEILING = 1

_CHECK_ERRORS = (EngineFailure, MalformedContainer, InvalidConfig, OSError)


@dataclass(frozen=True)
class CheckResult:
    """Outcome of one named check."""

    name: str
    passed: bool
    detail: str = ""


Reporter = Callable[[CheckResult], None]


def _log_reporter(result: CheckResult) -> None:
    if result.passed:
        logger.info("PASS %s", result.name)
    else:
        logger.error("FAIL %s%s", result.name, " ({})".format(result.detail) if result.detail else "")


class SelfTestOracle:
    """Runs the self-test groups against an engine.

    Args:
        engine: The engine under test (SoxEngine in production).
        workdir: Existing directory for synthesized inputs and outputs.
        reporter: Called once per check; defaults to logging.
    """

    def __init__(
        self,
        engine: AudioEngine,
        workdir: Path,
        reporter: Optional[Reporter] = None,
    ) -> None:
        self._engine = engine
        self._workdir = Path(workdir)
        self._reporter = reporter or _log_reporter
        self.results: List[CheckResult] = []

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    @property
    def failures(self) -> int:
        return sum(1 for result in self.results if not result.passed)

    def check(self, name: str, condition: bool, detail: str = "") -> bool:
        result = CheckResult(name=name, passed=bool(condition), detail=detail)
        self.results.append(result)
        self._reporter(result)
        return result.passed

    def _run_group(self, title: str, group: Callable[[], None]) -> None:
        logger.debug("Self-test group: %s", title)
        try:
            group()
        except _CHECK_ERRORS as exc:
            self.check(title, False, "{}: {}".format(type(exc).__name__, exc))
        except Exception as exc:
            logger.exception("Self-test group %s raised unexpectedly", title)
            self.check(title, False, "{}: {}".format(type(exc).__name__, exc))

    def run(self) -> int:
        """Run every group and return the number of failed checks."""
        groups: List[Tuple[str, Callable[[], None]]] = [
            ("Basic stereo WAV → IFF 8SVX", self.check_basic_conversion),
        ]
        groups.extend(
            ("Sample rate accuracy ({} Hz)".format(rate), functools.partial(self.check_rate_fidelity, rate))
            for rate in RATE_FIDELITY_RATES
        )
        groups += [
            ("Normalization", self.check_normalization),
            ("Odd/even BODY padding", self.check_padding),
            ("Extreme input format (192kHz/32-bit float)", self.check_extreme_input),
            ("Silence → 8-bit signed encoding", self.check_silence),
            ("Long filename with spaces", self.check_long_filename),
        ]
        for title, group in groups:
            self._run_group(title, group)

        total = len(self.results)
        if self.failures:
            logger.error("%d/%d self-test checks failed", self.failures, total)
        else:
            logger.info("All %d self-test checks passed", total)
        return self.failures

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _convert(
        self,
        stem: str,
        spec: SignalSpec,
        options: ConversionOptions,
    ) -> Tuple[bytes, ContainerMetadata, SampleBuffer]:
        source = self._engine.synthesize(self._workdir / "{}_in.wav".format(stem), spec)
        output = self._workdir / "{}_out.iff".format(stem)
        convert_file(self._engine, source.path, output, options)
        data = output.read_bytes()
        metadata, samples = decode_8svx(data)
        return data, metadata, samples

    def _within_tolerance(self, count: int, expected: float) -> bool:
        return expected * (1 - RATE_TOLERANCE) <= count <= expected * (1 + RATE_TOLERANCE)

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def check_basic_conversion(self) -> None:
        """0.05 s 440 Hz stereo at 44.1 kHz/16-bit → 16726 Hz, no dither."""
        spec = SignalSpec(sample_rate=44100, duration_s=0.05, frequency_hz=440, bit_depth=16, channels=2)
        data, metadata, samples = self._convert(
            "t1", spec, ConversionOptions(target_rate=16726, dither=False),
        )

        self.check("FORM tag", data[0:4] == FORM_TAG)
        self.check("8SVX type", data[8:12] == FORM_TYPE_TAG)
        self.check("VHDR chunk", data[12:16] == HEADER_TAG)
        header_size = struct.unpack(">I", data[16:20])[0]
        self.check("VHDR size = 20", header_size == HEADER_CHUNK_SIZE, "got {}".format(header_size))
        self.check("BODY chunk", data[40:44] == BODY_TAG)
        self.check(
            "Sample rate = 16726", metadata.sample_rate == 16726,
            "got {}".format(metadata.sample_rate),
        )
        self.check("No compression", metadata.compression == 0)
        self.check("Volume = 1.0 (0x10000)", metadata.volume == UNITY_VOLUME)
        self.check("No loop", metadata.repeat_sample_count == 0)

        body_size = struct.unpack(">I", data[44:48])[0]
        self.check(
            "BODY size = oneShotHiSamples ({})".format(body_size),
            body_size == metadata.one_shot_sample_count,
            "{} vs {}".format(body_size, metadata.one_shot_sample_count),
        )
        self.check(
            "Output length plausible (~836 samples, got {})".format(len(samples)),
            750 < len(samples) < 920,
        )
        form_size = read_form_size(data)
        self.check(
            "FORM size consistent with file size",
            form_size == len(data) - 8,
            "{} != {} - 8".format(form_size, len(data)),
        )

    def check_rate_fidelity(self, rate: int) -> None:
        """0.1 s 1 kHz at 48 kHz/24-bit converted to one common Amiga rate."""
        duration = 0.1
        spec = SignalSpec(sample_rate=48000, duration_s=duration, frequency_hz=1000, bit_depth=24)
        _, metadata, samples = self._convert(
            "t2_{}".format(rate), spec, ConversionOptions(target_rate=rate, dither=False),
        )
        self.check(
            "Rate {} Hz stored correctly".format(rate),
            metadata.sample_rate == rate,
            "got {}".format(metadata.sample_rate),
        )
        expected = duration * rate
        self.check(
            "Body size at {} Hz plausible ({} ≈ {:.0f})".format(rate, len(samples), expected),
            self._within_tolerance(len(samples), expected),
        )

    def check_normalization(self) -> None:
        """A -40 dB tone must come out louder, near full scale, when normalized."""
        spec = SignalSpec(sample_rate=44100, duration_s=0.05, frequency_hz=440, gain_db=-40)
        _, _, quiet = self._convert("t3_quiet", spec, ConversionOptions(target_rate=16726, dither=False))
        _, _, loud = self._convert(
            "t3_norm", spec, ConversionOptions(target_rate=16726, normalize=True, dither=False),
        )
        quiet_peak, norm_peak = quiet.peak(), loud.peak()
        self.check(
            "Normalized peak ({}) > quiet peak ({})".format(norm_peak, quiet_peak),
            norm_peak > quiet_peak,
        )
        self.check(
            "Normalized peak near full scale ({} > {})".format(norm_peak, NORMALIZED_PEAK_FLOOR),
            norm_peak > NORMALIZED_PEAK_FLOOR,
        )

    def check_padding(self) -> None:
        """127 raw bytes get one pad byte; 128 raw bytes get none."""
        for length in (127, 128):
            buffer = SampleBuffer(bytes(i % 256 for i in range(length)))
            output = self._workdir / "t4_{}.iff".format("odd" if length % 2 else "even")
            written = write_8svx(output, buffer, 16726)
            data = output.read_bytes()
            pad = length % 2
            expected = HEADER_REGION_SIZE + length + pad

            if pad:
                self.check(
                    "Odd BODY padded to even (file {} bytes)".format(len(data)),
                    len(data) == expected == 176 and data[-1:] == b"\x00",
                )
            else:
                self.check(
                    "Even BODY, no unnecessary pad ({})".format(len(data)),
                    len(data) == expected == 176,
                )
            self.check(
                "{}-byte BODY reports its own length".format(length),
                written == len(data) and len(decode_8svx(data)[1]) == length,
            )

    def check_extreme_input(self) -> None:
        """192 kHz 32-bit float, normalized, down to 8363 Hz."""
        spec = SignalSpec(
            sample_rate=192000, duration_s=0.02, frequency_hz=440, bit_depth=32,
            floating_point=True,
        )
        data, metadata, _ = self._convert(
            "t5", spec, ConversionOptions(target_rate=8363, normalize=True, dither=False),
        )
        self.check("192kHz/32-float → valid FORM", data[0:4] == FORM_TAG)
        self.check("Downsampled to 8363 Hz", metadata.sample_rate == 8363)

    def check_silence(self) -> None:
        """Zero-amplitude input stays within one LSB of zero."""
        spec = SignalSpec(sample_rate=16726, duration_s=0.01, frequency_hz=0)
        _, _, samples = self._convert("t6", spec, ConversionOptions(target_rate=16726, dither=False))
        peak = samples.peak()
        self.check(
            "Silence → near-zero samples (peak={})".format(peak),
            peak <= SILENCE_PEAK_CEILING,
        )

    def check_long_filename(self) -> None:
        """Names with spaces and beyond the Amiga length limit still encode."""
        long_name = "this is a very long sample name with spaces and stuff"
        target_dir = self._workdir / "sanitized"
        target_dir.mkdir(exist_ok=True)

        spec = SignalSpec(sample_rate=16726, duration_s=0.01, frequency_hz=0)
        source = self._engine.synthesize(self._workdir / "{}.wav".format(long_name), spec)
        output = target_dir / "{}.iff".format(long_name)
        convert_file(self._engine, source.path, output, ConversionOptions(target_rate=16726, dither=False))

        data = output.read_bytes()
        decode_8svx(data)
        self.check("Long filename → valid output", data[0:4] == FORM_TAG)
