"""Single-file conversion: probe → plan → estimate → engine → 8SVX.

WHY: The CLI, batch mode and the self-test oracle all convert files the
same way. One function owns that sequence so the oracle tests exactly
what users run.

HOW: convert_file() probes the source through the engine, fills a
ConversionConfig from the user's options plus the probed rate and
channel count, builds the plan (which validates before the engine does
any work), logs the size advisory if needed, runs the engine and writes
the container atomically. preview_lines() produces the same plan as
text without converting.

RULES:
- InvalidConfig is raised before the engine processes anything
- An EngineFailure without a stage list is re-raised with the plan
  attached; OSError propagates unchanged; nothing is retried
- The engine output is written as-is; its length is the one-shot count
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from svx_converter.container.encoder import write_8svx
from svx_converter.container.models import SampleBuffer
from svx_converter.core.estimate import SizeEstimate, estimate_size
from svx_converter.core.plan import (
    ConversionConfig,
    ProcessingStage,
    build_plan,
    describe_plan,
    validate_options,
)
from svx_converter.engine.base import AudioEngine, EngineFailure, SourceDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversionOptions:
    """User-chosen conversion settings, independent of any source file.

    WHY: The same options apply to every file in a batch, while the
    source rate and channel count differ per file. for_source() merges
    the two into a ConversionConfig.
    """

    target_rate: int = 16726
    normalize: bool = False
    gain_db: Optional[float] = None
    lowpass_hz: Optional[float] = None
    amiga_lowpass: bool = False
    trim_silence: bool = False
    dither: bool = True

    def for_source(self, source: SourceDescriptor) -> ConversionConfig:
        return ConversionConfig(
            source_rate=source.sample_rate,
            source_channels=source.channels,
            **dataclasses.asdict(self),
        )


@dataclass
class ConversionResult:
    """Outcome of one successful conversion."""

    source: SourceDescriptor
    output_path: Path
    stages: List[ProcessingStage]
    estimate: SizeEstimate
    samples: SampleBuffer
    file_size: int
    target_rate: int

    @property
    def sample_count(self) -> int:
        return len(self.samples)

    @property
    def duration_s(self) -> float:
        return self.sample_count / self.target_rate if self.target_rate else 0.0


def plan_for(
    engine: AudioEngine,
    source_path: Union[str, Path],
    options: ConversionOptions,
):
    """Probe a source and build its plan and estimate without converting.

    Returns:
        (source, config, stages, estimate)
    """
    validate_options(options.target_rate, options.gain_db, options.lowpass_hz)
    source = engine.probe(Path(source_path))
    config = options.for_source(source)
    stages = build_plan(config)
    estimate = estimate_size(source.sample_count, source.sample_rate, config.target_rate)
    return source, config, stages, estimate


def convert_file(
    engine: AudioEngine,
    source_path: Union[str, Path],
    output_path: Union[str, Path],
    options: ConversionOptions,
) -> ConversionResult:
    """Convert one audio file to an IFF 8SVX container.

    Args:
        engine: The DSP engine that executes the plan.
        source_path: Input audio file.
        output_path: Destination .iff path; its directory must exist.
        options: User conversion settings.

    Returns:
        ConversionResult describing what was written.

    Raises:
        InvalidConfig: Options out of domain for this source.
        EngineFailure: The engine could not probe or process the source.
        OSError: The output could not be written.
    """
    source, config, stages, estimate = plan_for(engine, source_path, options)
    logger.info(
        "Converting %s: %d Hz %d-bit %dch → %d Hz 8-bit mono (%d stages)",
        source.path.name, source.sample_rate, source.bit_depth, source.channels,
        config.target_rate, len(stages),
    )

    try:
        samples = engine.process(source, stages, config.target_rate)
    except EngineFailure as exc:
        if exc.stages:
            raise
        raise EngineFailure(exc.message, stages, stderr=exc.stderr) from exc

    output = Path(output_path)
    file_size = write_8svx(output, samples, config.target_rate)
    logger.info("Wrote %s (%d samples, %d bytes)", output, len(samples), file_size)

    return ConversionResult(
        source=source,
        output_path=output,
        stages=stages,
        estimate=estimate,
        samples=samples,
        file_size=file_size,
        target_rate=config.target_rate,
    )


def preview_lines(
    source: SourceDescriptor,
    config: ConversionConfig,
    stages: List[ProcessingStage],
    estimate: SizeEstimate,
) -> List[str]:
    """Human-readable file info and conversion plan, one line per entry."""
    lines = [
        "Source: {}".format(source.path.name),
        "  Channels:    {}".format(source.channels),
        "  Sample Rate: {}".format(source.sample_rate),
        "  Precision:   {}-bit".format(source.bit_depth),
        "  Duration:    {:.2f}s".format(source.duration_s),
        "  Samples:     {}".format(source.sample_count),
        "",
        "Conversion plan:",
        "  {} Hz {}-bit {}ch → {} Hz 8-bit mono".format(
            source.sample_rate, source.bit_depth, source.channels, config.target_rate,
        ),
        "  Estimated output: ~{} samples ({:.1f} KB)".format(
            estimate.sample_count, estimate.kilobytes,
        ),
    ]
    lines.extend("  {}".format(line) for line in describe_plan(stages))
    return lines
