"""Audio engine adapters, the DSP boundary of the converter.

WHY: The converter decides which processing stages run and in what
order; an engine actually runs them. This package holds the capability
interface and the SoX-backed implementation.

HOW: base.py defines AudioEngine, SourceDescriptor, SignalSpec and
EngineFailure. sox.py drives the ``sox`` and ``soxi`` command-line tools
through subprocess.

RULES:
- Engine adapters are the only code that starts external processes
- Every adapter failure surfaces as EngineFailure
"""

from svx_converter.engine.base import AudioEngine, EngineFailure, SignalSpec, SourceDescriptor
from svx_converter.engine.sox import SoxEngine

__all__ = ["AudioEngine", "EngineFailure", "SignalSpec", "SourceDescriptor", "SoxEngine"]
