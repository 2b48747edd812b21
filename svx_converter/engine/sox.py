"""SoX-backed audio engine.

WHY: SoX already does everything the plan asks for (mixdown, silence
trimming, gain/normalization, very-high-quality sinc resampling with
built-in anti-aliasing, low-pass filtering and TPDF dither) and it
reads nearly every input format. Driving it as a subprocess keeps DSP
code out of this package entirely.

HOW: build_effects() maps each ProcessingStage to its sox effect
arguments. build_process_command() assembles one sox invocation that
reads the source, applies the effects and writes headerless signed
8-bit mono at the target rate into a temp file. probe() asks soxi for
the source's properties; synthesize() uses sox's ``synth`` generator.

RULES:
- Output is always ``-e signed-integer -b 8 -c 1 -r <target> -t raw``
- Plans without a Dither stage run with ``-D`` so SoX does not add its
  automatic dither; bit depth is then truncated
- TruncateBitDepth maps to no effect; the output encoding performs it
- A missing binary or non-zero exit raises EngineFailure with stderr
"""

from __future__ import annotations

import logging
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence

from svx_converter.config import SOX_BINARY, SOXI_BINARY
from svx_converter.container.models import SampleBuffer
from svx_converter.core.plan import (
    Dither,
    Gain,
    LowPass,
    MixToMono,
    Normalize,
    ProcessingStage,
    Resample,
    TrimSilence,
    TruncateBitDepth,
)
from svx_converter.engine.base import AudioEngine, EngineFailure, SignalSpec, SourceDescriptor

logger = logging.getLogger(__name__)


def _num(value: float) -> str:
    return "{:g}".format(value)


def stage_effects(stage: ProcessingStage) -> List[str]:
    """SoX effect arguments for a single stage."""
    if isinstance(stage, MixToMono):
        return ["remix", "-"]
    if isinstance(stage, TrimSilence):
        # silence only trims the start; reverse twice to trim the end too
        trim = ["silence", "1", _num(stage.min_duration_s), "{}d".format(_num(stage.threshold_db))]
        return trim + ["reverse"] + trim + ["reverse"]
    if isinstance(stage, Normalize):
        if stage.target_db == 0:
            return ["gain", "-n"]
        return ["gain", "-n", _num(stage.target_db)]
    if isinstance(stage, Gain):
        return ["gain", _num(stage.db)]
    if isinstance(stage, Resample):
        return ["rate", "-v", str(stage.target_rate)]
    if isinstance(stage, LowPass):
        return ["lowpass", _num(stage.cutoff_hz)]
    if isinstance(stage, Dither):
        return ["dither", "-s"] if stage.noise_shaping else ["dither"]
    if isinstance(stage, TruncateBitDepth):
        return []
    raise TypeError("Unknown stage type: {!r}".format(stage))


def build_effects(stages: Sequence[ProcessingStage]) -> List[str]:
    """Concatenate the effect arguments of a whole plan, in order."""
    effects: List[str] = []
    for stage in stages:
        effects.extend(stage_effects(stage))
    return effects


def build_process_command(
    source: Path,
    output: Path,
    stages: Sequence[ProcessingStage],
    target_rate: int,
    sox_binary: str = SOX_BINARY,
) -> List[str]:
    """Full sox argv converting ``source`` into raw 8-bit mono at ``output``."""
    cmd = [sox_binary]
    if not any(isinstance(stage, Dither) for stage in stages):
        cmd.append("-D")
    cmd.extend([
        str(source),
        "--encoding", "signed-integer",
        "--bits", "8",
        "--channels", "1",
        "--rate", str(target_rate),
        "--type", "raw",
        str(output),
    ])
    cmd.extend(build_effects(stages))
    return cmd


def build_synth_command(path: Path, spec: SignalSpec, sox_binary: str = SOX_BINARY) -> List[str]:
    """sox argv that writes the test signal described by ``spec``."""
    cmd = [
        sox_binary, "-n",
        "-r", str(spec.sample_rate),
        "-b", str(spec.bit_depth),
        "-c", str(spec.channels),
    ]
    if spec.floating_point:
        cmd.extend(["-e", "floating-point"])
    cmd.extend([str(path), "synth", _num(spec.duration_s), "sine", _num(spec.frequency_hz)])
    if spec.gain_db is not None:
        cmd.extend(["gain", _num(spec.gain_db)])
    return cmd


class SoxEngine(AudioEngine):
    """AudioEngine implementation that shells out to SoX.

    RULES:
    - sox_binary / soxi_binary default to SVX_SOX_PATH / SVX_SOXI_PATH
    - Each process() call works in its own temporary directory
    """

    def __init__(self, sox_binary: Optional[str] = None, soxi_binary: Optional[str] = None) -> None:
        self._sox = sox_binary or SOX_BINARY
        self._soxi = soxi_binary or SOXI_BINARY

    @property
    def name(self) -> str:
        return "SoX"

    def _run(self, cmd: List[str], stages: Sequence[ProcessingStage] = ()) -> str:
        logger.debug("Running: %s", " ".join(cmd))
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=True)
        except FileNotFoundError as exc:
            raise EngineFailure(
                "{} not found. Install SoX (e.g. brew install sox)".format(cmd[0]), stages,
            ) from exc
        except subprocess.CalledProcessError as exc:
            raise EngineFailure(
                "{} exited with status {}".format(cmd[0], exc.returncode),
                stages,
                stderr=exc.stderr or "",
            ) from exc
        return result.stdout

    def _soxi_int(self, flag: str, path: Path) -> int:
        output = self._run([self._soxi, flag, str(path)]).strip()
        try:
            return int(output)
        except ValueError as exc:
            raise EngineFailure(
                "Cannot read {} from {}: unexpected soxi output {!r}".format(flag, path, output)
            ) from exc

    def probe(self, path: Path) -> SourceDescriptor:
        path = Path(path)
        return SourceDescriptor(
            path=path,
            sample_rate=self._soxi_int("-r", path),
            channels=self._soxi_int("-c", path),
            bit_depth=self._soxi_int("-b", path),
            sample_count=self._soxi_int("-s", path),
        )

    def process(
        self,
        source: SourceDescriptor,
        stages: Sequence[ProcessingStage],
        target_rate: int,
    ) -> SampleBuffer:
        with tempfile.TemporaryDirectory(prefix="svx-") as tmpdir:
            raw_out = Path(tmpdir) / "output.raw"
            cmd = build_process_command(source.path, raw_out, stages, target_rate, self._sox)
            self._run(cmd, stages)
            try:
                data = raw_out.read_bytes()
            except OSError as exc:
                raise EngineFailure("sox produced no output", stages) from exc
        logger.debug("Engine produced %d samples from %s", len(data), source.path)
        return SampleBuffer(data)

    def synthesize(self, path: Path, spec: SignalSpec) -> SourceDescriptor:
        path = Path(path)
        self._run(build_synth_command(path, spec, self._sox))
        return self.probe(path)
