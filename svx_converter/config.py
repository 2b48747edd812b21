"""Configuration constants, Amiga rate table, and .env loading.

WHY: Centralizes all configurable values so they are easy to find,
update, and override. The rate table, the chip-RAM budget and the
naming limits are plain data, not buried in logic.

HOW: python-dotenv loads the .env file on import. Defaults are
module-level constants; the ones a user is likely to change per
machine (sox location, default rate, output directory) can be
overridden through environment variables.

RULES:
- Every SVX_* variable is optional; the defaults match the classic tool
- A malformed numeric override logs a warning and keeps the default
- AMIGA_RATES maps common tracker rates to a short description
- Rates outside AMIGA_RATE_RANGE are allowed but produce an advisory
- Nothing here holds per-conversion state; conversions get a ConversionConfig
"""

from __future__ import annotations

import logging
import os
from typing import Dict, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load .env from the project root (where the tool is run from)
load_dotenv()

# ---------------------------------------------------------------------------
# Amiga sample rates
# ---------------------------------------------------------------------------

AMIGA_RATES: Dict[int, str] = {
    8363: "ProTracker C-3 standard (low quality, saves memory)",
    11025: "Telephony standard",
    16726: "2x ProTracker C-3 (good balance, default)",
    22050: "CD/2 (high quality, more memory)",
    27928: "4x ProTracker C-3 (near max safe rate for PAL)",
}

AMIGA_RATE_RANGE = (2000, 28867)
"""Typical playable range on PAL hardware, inclusive."""

MEMORY_BUDGET_BYTES = 512_000
"""Outputs above this size get a chip-RAM advisory."""

# ---------------------------------------------------------------------------
# Output naming
# ---------------------------------------------------------------------------

MAX_NAME_LENGTH = 24
"""Amiga-friendly stem length for derived output names."""

OUTPUT_EXTENSION = ".iff"

# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------

def _env_int(name: str, default: int) -> int:
    """Read an integer override, keeping ``default`` if the value is malformed."""
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer, using %d", name, raw, default)
        return default


DEFAULT_SAMPLE_RATE = _env_int("SVX_SAMPLE_RATE", 16726)
DEFAULT_OUTPUT_DIR = os.getenv("SVX_OUTPUT_DIR", "./amiga_samples")
DEFAULT_DITHER = os.getenv("SVX_DITHER", "true").lower() == "true"
SOX_BINARY = os.getenv("SVX_SOX_PATH", "sox")
SOXI_BINARY = os.getenv("SVX_SOXI_PATH", "soxi")


def check_rate_range(rate: int) -> Optional[str]:
    """Return an advisory if ``rate`` is outside the typical Amiga range.

    RULES:
    - Returns None for rates inside AMIGA_RATE_RANGE (inclusive)
    - Never raises; an odd rate is the user's call
    """
    low, high = AMIGA_RATE_RANGE
    if low <= rate <= high:
        return None
    return "Sample rate {} Hz is outside typical Amiga range ({}-{} Hz)".format(rate, low, high)


def configure_logging(verbose: bool = False) -> None:
    """Set up root logging for command-line use.

    WARNING by default, so the chip-RAM advisory and engine problems
    show up next to the status lines; DEBUG with ``verbose``. Log lines
    go to stderr so stdout stays clean for --preview --json output.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
