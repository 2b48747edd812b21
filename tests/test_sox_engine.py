"""Tests for the SoX engine adapter.

WHY: The adapter is the only place plan stages become sox arguments. A
wrong effect name or a missing -D silently changes the sound of every
conversion.

HOW: Checks the effect mapping and full argv construction directly, and
replaces subprocess.run to drive SoxEngine's error handling. Tests that
need a real sox binary are skipped when it is not on PATH.

RULES:
- Output arguments are always signed 8-bit raw mono at the target rate
- Engine errors surface as EngineFailure carrying stages and stderr
"""

import shutil
import subprocess
from pathlib import Path

import pytest

from svx_converter.container import decode_8svx
from svx_converter.core.converter import ConversionOptions, convert_file
from svx_converter.core.plan import (
    ConversionConfig,
    Dither,
    Gain,
    LowPass,
    MixToMono,
    Normalize,
    Resample,
    TrimSilence,
    TruncateBitDepth,
    build_plan,
)
from svx_converter.engine import EngineFailure, SignalSpec, SourceDescriptor, SoxEngine
from svx_converter.engine.sox import (
    build_effects,
    build_process_command,
    build_synth_command,
    stage_effects,
)

needs_sox = pytest.mark.skipif(
    shutil.which("sox") is None or shutil.which("soxi") is None,
    reason="sox/soxi not installed",
)


# ---------------------------------------------------------------------------
# Effect mapping
# ---------------------------------------------------------------------------


class TestStageEffects:

    def test_mix(self):
        assert stage_effects(MixToMono(channels=2)) == ["remix", "-"]

    def test_trim_both_ends(self):
        assert stage_effects(TrimSilence()) == [
            "silence", "1", "0.01", "-48d",
            "reverse",
            "silence", "1", "0.01", "-48d",
            "reverse",
        ]

    def test_normalize(self):
        assert stage_effects(Normalize()) == ["gain", "-n"]
        assert stage_effects(Normalize(target_db=-1)) == ["gain", "-n", "-1"]

    def test_gain(self):
        assert stage_effects(Gain(db=-3.5)) == ["gain", "-3.5"]

    def test_resample(self):
        assert stage_effects(Resample(source_rate=44100, target_rate=8363)) == [
            "rate", "-v", "8363",
        ]

    def test_lowpass(self):
        assert stage_effects(LowPass(cutoff_hz=3300.0, source="amiga")) == ["lowpass", "3300"]

    def test_dither(self):
        assert stage_effects(Dither()) == ["dither", "-s"]
        assert stage_effects(Dither(noise_shaping=False)) == ["dither"]

    def test_truncate_has_no_effect(self):
        assert stage_effects(TruncateBitDepth()) == []

    def test_unknown_stage(self):
        with pytest.raises(TypeError):
            stage_effects("reverb")

    def test_build_effects_keeps_plan_order(self):
        stages = build_plan(ConversionConfig(
            source_rate=44100, source_channels=2, gain_db=-3, amiga_lowpass=True,
        ))
        assert build_effects(stages) == [
            "remix", "-",
            "gain", "-3",
            "rate", "-v", "16726",
            "lowpass", "3300",
            "dither", "-s",
        ]


class TestCommands:

    def test_process_command_with_dither(self):
        stages = [Dither(), TruncateBitDepth()]
        cmd = build_process_command(Path("in.wav"), Path("out.raw"), stages, 16726, "sox")
        assert cmd == [
            "sox", "in.wav",
            "--encoding", "signed-integer",
            "--bits", "8",
            "--channels", "1",
            "--rate", "16726",
            "--type", "raw",
            "out.raw",
            "dither", "-s",
        ]

    def test_process_command_without_dither_disables_auto_dither(self):
        cmd = build_process_command(Path("in.wav"), Path("out.raw"), [TruncateBitDepth()], 8363, "sox")
        assert cmd[:3] == ["sox", "-D", "in.wav"]
        assert "dither" not in cmd

    def test_synth_command(self):
        spec = SignalSpec(sample_rate=44100, duration_s=0.05, frequency_hz=440, channels=2)
        assert build_synth_command(Path("t.wav"), spec, "sox") == [
            "sox", "-n", "-r", "44100", "-b", "16", "-c", "2",
            "t.wav", "synth", "0.05", "sine", "440",
        ]

    def test_synth_command_float_and_gain(self):
        spec = SignalSpec(
            sample_rate=192000, duration_s=0.02, bit_depth=32, floating_point=True, gain_db=-40,
        )
        cmd = build_synth_command(Path("t.wav"), spec, "sox")
        assert ["-e", "floating-point"] == cmd[8:10]
        assert cmd[-2:] == ["gain", "-40"]


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------


class TestSoxEngineErrors:

    def _source(self, tmp_path):
        return SourceDescriptor(
            path=tmp_path / "in.wav", sample_rate=44100, channels=1, bit_depth=16,
            sample_count=100,
        )

    def test_missing_binary(self, tmp_path):
        engine = SoxEngine(sox_binary=str(tmp_path / "no-such-sox"))
        stages = [TruncateBitDepth()]
        with pytest.raises(EngineFailure) as excinfo:
            engine.process(self._source(tmp_path), stages, 16726)
        assert "not found" in str(excinfo.value)
        assert excinfo.value.stages == stages

    def test_nonzero_exit_carries_stderr(self, tmp_path, monkeypatch):
        def fake_run(cmd, **kwargs):
            raise subprocess.CalledProcessError(2, cmd, output="", stderr="sox FAIL formats: can't open")

        monkeypatch.setattr(subprocess, "run", fake_run)
        stages = [Resample(source_rate=44100, target_rate=16726), TruncateBitDepth()]
        with pytest.raises(EngineFailure) as excinfo:
            SoxEngine().process(self._source(tmp_path), stages, 16726)
        err = excinfo.value
        assert err.stderr == "sox FAIL formats: can't open"
        assert err.stages == stages
        assert "can't open" in str(err)

    def test_probe_parses_soxi_output(self, tmp_path, monkeypatch):
        answers = {"-r": "48000\n", "-c": "2\n", "-b": "24\n", "-s": "4800\n"}

        def fake_run(cmd, **kwargs):
            return subprocess.CompletedProcess(cmd, 0, stdout=answers[cmd[1]], stderr="")

        monkeypatch.setattr(subprocess, "run", fake_run)
        source = SoxEngine().probe(tmp_path / "in.wav")
        assert source == SourceDescriptor(
            path=tmp_path / "in.wav", sample_rate=48000, channels=2, bit_depth=24,
            sample_count=4800,
        )
        assert source.duration_s == pytest.approx(0.1)

    def test_probe_rejects_garbage(self, tmp_path, monkeypatch):
        def fake_run(cmd, **kwargs):
            return subprocess.CompletedProcess(cmd, 0, stdout="not a number", stderr="")

        monkeypatch.setattr(subprocess, "run", fake_run)
        with pytest.raises(EngineFailure, match="unexpected soxi output"):
            SoxEngine().probe(tmp_path / "in.wav")

    def test_process_without_output_file(self, tmp_path, monkeypatch):
        def fake_run(cmd, **kwargs):
            return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

        monkeypatch.setattr(subprocess, "run", fake_run)
        with pytest.raises(EngineFailure, match="no output"):
            SoxEngine().process(self._source(tmp_path), [TruncateBitDepth()], 16726)

    def test_process_reads_raw_output(self, tmp_path, monkeypatch):
        def fake_run(cmd, **kwargs):
            Path(cmd[cmd.index("raw") + 1]).write_bytes(b"\x01\xff\x00")
            return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

        monkeypatch.setattr(subprocess, "run", fake_run)
        buf = SoxEngine().process(self._source(tmp_path), [Dither(), TruncateBitDepth()], 16726)
        assert buf.samples == [1, -1, 0]


# ---------------------------------------------------------------------------
# Real sox
# ---------------------------------------------------------------------------


@needs_sox
class TestSoxEngineLive:

    def test_synthesize_and_probe(self, tmp_path):
        engine = SoxEngine()
        spec = SignalSpec(sample_rate=44100, duration_s=0.05, channels=2)
        source = engine.synthesize(tmp_path / "tone.wav", spec)
        assert source.sample_rate == 44100
        assert source.channels == 2
        assert source.sample_count == 2205

    def test_convert_file_end_to_end(self, tmp_path):
        engine = SoxEngine()
        spec = SignalSpec(sample_rate=44100, duration_s=0.05, channels=2)
        source = engine.synthesize(tmp_path / "tone.wav", spec)
        out = tmp_path / "tone.iff"
        convert_file(engine, source.path, out, ConversionOptions(target_rate=16726, dither=False))
        meta, samples = decode_8svx(out.read_bytes())
        assert meta.sample_rate == 16726
        assert 750 < len(samples) < 920
