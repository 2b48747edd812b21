"""8SVX Sample Converter: arbitrary audio → IFF 8SVX for Amiga trackers.

WHY: OctaMED, ProTracker and friends want 8-bit signed mono PCM in an
IFF 8SVX container, at a rate that fits the hardware and a size that
fits in chip RAM. Getting there cleanly takes a carefully ordered chain
of mixdown, gain, resampling, filtering and dither, followed by a
byte-exact container writer.

HOW: Four stages: probe (engine), plan (core), convert (engine), encode
(container). The plan builder decides which processing stages run and
in what order; an external engine (SoX) performs the DSP; the encoder
wraps the resulting samples. A self-test oracle exercises the whole
path with synthetic signals.

RULES:
- The plan order is fixed; configuration only includes or parameterizes stages
- The container layout is bit-exact and verified by a companion decoder
- No DSP lives in this package; engines do the math
"""

__version__ = "0.1.0"
