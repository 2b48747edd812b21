"""Core planning and conversion modules.

WHY: The core package holds the parts of the converter that must be
deterministic: the stage plan, the size estimate, output naming and the
single-file conversion sequence. None of it does DSP.

HOW: plan.py builds the ordered stage list from a ConversionConfig,
estimate.py predicts output size, naming.py derives collision-free
output paths, converter.py runs probe → plan → engine → encoder.

RULES:
- Stage order is a contract; change with care
- Everything here is a pure function of explicit inputs, except
  converter.py (engine and disk) and OutputPathAllocator (its lock)
"""
