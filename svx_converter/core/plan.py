"""Conversion plan builder: configuration → ordered processing stages.

WHY: Stage order is what keeps an 8-bit conversion clean. Mixing down
before trimming avoids per-channel trim artifacts, gain before
resampling avoids resampler overshoot clipping, the "hardware" low-pass
belongs on the final-rate signal, and dither must sit right before the
bit-depth reduction it masks. The order is therefore fixed here and is
never something a caller can rearrange.

HOW: ConversionConfig is an explicit parameter record. build_plan()
walks the seven fixed slots and includes, omits or parameterizes each
one. Each stage is a small frozen dataclass with a ``kind`` tag, so the
engine adapter can dispatch on type and the preview can serialize the
plan with plan_to_dict().

RULES:
- Fixed order: mix → trim → normalize|gain → resample → amiga LPF →
  manual LPF → dither? → truncate
- MixToMono only when the source has more than one channel
- Normalize wins over an explicit gain when both are requested
- Resample only when target rate differs from source rate
- The Amiga (3300 Hz) and manual low-pass stack; neither overrides the other
- TruncateBitDepth is always the last stage
- Out-of-domain values raise InvalidConfig before any engine call
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import jsonschema

_SCHEMA_PATH = Path(__file__).resolve().parent / "conversion_plan_schema.json"
_CACHED_SCHEMA: Optional[Dict[str, Any]] = None

AMIGA_LOWPASS_HZ = 3300.0
"""Cutoff of the A500-style output filter emulation."""

SILENCE_THRESHOLD_DB = -48.0
SILENCE_MIN_DURATION_S = 0.01
NORMALIZE_TARGET_DB = 0.0
OUTPUT_BIT_DEPTH = 8


class InvalidConfig(ValueError):
    """Raised when a conversion configuration is out of domain.

    WHY: A zero rate or negative cutoff would only fail deep inside the
    engine after the source was already decoded. Failing in the builder
    costs nothing.

    HOW: Raised by build_plan() and estimate_size() during validation.

    RULES:
    - Raised before any engine invocation
    - The message names the offending parameter and its value
    """


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MixToMono:
    channels: int
    kind: str = field(default="mix_to_mono", init=False)


@dataclass(frozen=True)
class TrimSilence:
    threshold_db: float = SILENCE_THRESHOLD_DB
    min_duration_s: float = SILENCE_MIN_DURATION_S
    kind: str = field(default="trim_silence", init=False)


@dataclass(frozen=True)
class Gain:
    db: float
    kind: str = field(default="gain", init=False)


@dataclass(frozen=True)
class Normalize:
    target_db: float = NORMALIZE_TARGET_DB
    kind: str = field(default="normalize", init=False)


@dataclass(frozen=True)
class Resample:
    source_rate: int
    target_rate: int
    kind: str = field(default="resample", init=False)


@dataclass(frozen=True)
class LowPass:
    """Low-pass filter stage.

    ``source`` records why the filter is in the plan: ``"amiga"`` for the
    fixed A500 emulation, ``"manual"`` for an explicit cutoff.
    """

    cutoff_hz: float
    source: str = "manual"
    kind: str = field(default="lowpass", init=False)


@dataclass(frozen=True)
class Dither:
    noise_shaping: bool = True
    kind: str = field(default="dither", init=False)


@dataclass(frozen=True)
class TruncateBitDepth:
    bits: int = OUTPUT_BIT_DEPTH
    kind: str = field(default="truncate", init=False)


ProcessingStage = Union[
    MixToMono, TrimSilence, Gain, Normalize, Resample, LowPass, Dither, TruncateBitDepth,
]


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConversionConfig:
    """Everything the builder needs, passed explicitly.

    WHY: The conversion used to be steered by process-wide flags. An
    immutable record makes each conversion self-describing and lets
    batch workers run side by side without sharing state.

    RULES:
    - source_rate and source_channels come from probing the input
    - gain_db is ignored when normalize is set
    - lowpass_hz is an explicit cutoff; None means no manual filter
    """

    source_rate: int
    source_channels: int
    target_rate: int = 16726
    normalize: bool = False
    gain_db: Optional[float] = None
    lowpass_hz: Optional[float] = None
    amiga_lowpass: bool = False
    trim_silence: bool = False
    dither: bool = True
    noise_shaping: bool = True


def validate_options(
    target_rate: int,
    gain_db: Optional[float] = None,
    lowpass_hz: Optional[float] = None,
) -> None:
    """Check the source-independent parameters.

    Callers that must probe a file before they know its rate run this
    first, so a bad option fails before the engine is touched at all.
    """
    if target_rate <= 0:
        raise InvalidConfig("target_rate must be positive, got {}".format(target_rate))
    if gain_db is not None and not math.isfinite(gain_db):
        raise InvalidConfig("gain_db must be finite, got {}".format(gain_db))
    if lowpass_hz is not None and not (math.isfinite(lowpass_hz) and lowpass_hz > 0):
        raise InvalidConfig("lowpass_hz must be positive, got {}".format(lowpass_hz))


def validate_config(config: ConversionConfig) -> None:
    """Raise InvalidConfig for values no engine could act on."""
    validate_options(config.target_rate, config.gain_db, config.lowpass_hz)
    if config.source_rate <= 0:
        raise InvalidConfig("source_rate must be positive, got {}".format(config.source_rate))
    if config.source_channels < 1:
        raise InvalidConfig(
            "source_channels must be at least 1, got {}".format(config.source_channels)
        )


def build_plan(config: ConversionConfig) -> List[ProcessingStage]:
    """Build the ordered stage list for one conversion.

    Args:
        config: The validated-on-entry conversion parameters.

    Returns:
        Stages in execution order; the last one is always TruncateBitDepth.

    Raises:
        InvalidConfig: If any parameter is out of domain.
    """
    validate_config(config)
    stages: List[ProcessingStage] = []

    if config.source_channels > 1:
        stages.append(MixToMono(channels=config.source_channels))

    if config.trim_silence:
        stages.append(TrimSilence())

    if config.normalize:
        stages.append(Normalize())
    elif config.gain_db is not None:
        stages.append(Gain(db=config.gain_db))

    if config.target_rate != config.source_rate:
        stages.append(Resample(source_rate=config.source_rate, target_rate=config.target_rate))

    if config.amiga_lowpass:
        stages.append(LowPass(cutoff_hz=AMIGA_LOWPASS_HZ, source="amiga"))

    if config.lowpass_hz is not None:
        stages.append(LowPass(cutoff_hz=float(config.lowpass_hz), source="manual"))

    if config.dither:
        stages.append(Dither(noise_shaping=config.noise_shaping))
    stages.append(TruncateBitDepth())

    return stages


# ---------------------------------------------------------------------------
# Presentation
# ---------------------------------------------------------------------------


def _format_number(value: float) -> str:
    return "{:g}".format(value)


def describe_stage(stage: ProcessingStage) -> str:
    """One human-readable line for a stage, as shown in previews."""
    if isinstance(stage, MixToMono):
        return "Mix {} channels to mono".format(stage.channels)
    if isinstance(stage, TrimSilence):
        return "Trim silence: yes ({} dB)".format(_format_number(stage.threshold_db))
    if isinstance(stage, Normalize):
        return "Normalize: {} dBFS".format(_format_number(stage.target_db))
    if isinstance(stage, Gain):
        return "Gain: {:+g} dB".format(stage.db)
    if isinstance(stage, Resample):
        return "Resample: {} Hz → {} Hz".format(stage.source_rate, stage.target_rate)
    if isinstance(stage, LowPass):
        if stage.source == "amiga":
            return "A500-style LPF: yes ({:.1f} kHz)".format(stage.cutoff_hz / 1000)
        return "LPF cutoff: {} Hz".format(_format_number(stage.cutoff_hz))
    if isinstance(stage, Dither):
        return "Dither: TPDF{}".format(" (noise-shaped)" if stage.noise_shaping else "")
    if isinstance(stage, TruncateBitDepth):
        return "Reduce to {}-bit".format(stage.bits)
    raise TypeError("Unknown stage type: {!r}".format(stage))


def describe_plan(stages: List[ProcessingStage]) -> List[str]:
    """Human-readable lines for a whole plan, in execution order.

    A plan without a Dither stage gets an explicit "off (truncate)" line
    so previews always say what happens to quantization.
    """
    lines = [describe_stage(stage) for stage in stages]
    if not any(isinstance(stage, Dither) for stage in stages):
        lines.insert(len(lines) - 1, "Dither: off (truncate)")
    return lines


def stage_to_dict(stage: ProcessingStage) -> Dict[str, Any]:
    """Serialize a stage as a flat dict with ``kind`` first."""
    fields = dict(vars(stage))
    kind = fields.pop("kind")
    result: Dict[str, Any] = {"kind": kind}
    result.update(fields)
    return result


def get_plan_schema() -> Dict[str, Any]:
    """The conversion plan JSON schema, loaded once from disk."""
    global _CACHED_SCHEMA
    if _CACHED_SCHEMA is None:
        with open(_SCHEMA_PATH) as f:
            _CACHED_SCHEMA = json.load(f)
    return _CACHED_SCHEMA


def plan_to_dict(config: ConversionConfig, stages: List[ProcessingStage]) -> Dict[str, Any]:
    """JSON-ready document describing a plan.

    The document is validated against conversion_plan_schema.json
    before returning.

    Raises:
        jsonschema.ValidationError: If the document does not conform.
    """
    document = {
        "source_rate": config.source_rate,
        "source_channels": config.source_channels,
        "target_rate": config.target_rate,
        "stages": [stage_to_dict(stage) for stage in stages],
    }
    jsonschema.validate(instance=document, schema=get_plan_schema())
    return document
