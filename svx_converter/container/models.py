"""Tag literals and typed records for the IFF 8SVX container.

WHY: The encoder, the decoder and the self-test oracle all need the same
four-byte tags, fixed sizes and default header values. Keeping them as
plain data in one module means a field can never drift between writer
and reader.

HOW: Module-level constants describe the byte layout. Two frozen
dataclasses carry the data: SampleBuffer (raw signed 8-bit PCM) and
ContainerMetadata (the VHDR fields).

RULES:
- FORM, 8SVX, VHDR and BODY are the only tags this package writes or accepts
- The VHDR payload is always 20 bytes; the header region is always 48 bytes
- Volume is 16.16 fixed point; 0x00010000 means unity gain
- No loop support: repeat_sample_count and samples_per_cycle are always 0
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List

FORM_TAG = b"FORM"
FORM_TYPE_TAG = b"8SVX"
HEADER_TAG = b"VHDR"
BODY_TAG = b"BODY"

HEADER_CHUNK_SIZE = 20
"""Size of the VHDR payload in bytes."""

CHUNK_PREAMBLE_SIZE = 8
"""Tag (4 bytes) plus size field (4 bytes) in front of every chunk."""

HEADER_REGION_SIZE = 12 + CHUNK_PREAMBLE_SIZE + HEADER_CHUNK_SIZE + CHUNK_PREAMBLE_SIZE
"""FORM preamble + type tag (12) + VHDR chunk (28) + BODY preamble (8) = 48."""

UNITY_VOLUME = 0x00010000
DEFAULT_OCTAVE = 1
NO_COMPRESSION = 0


class MalformedContainer(ValueError):
    """Raised when bytes do not form a valid IFF 8SVX container.

    WHY: The self-test oracle must be able to tell "the encoder wrote
    garbage" apart from an I/O error or an engine failure.

    HOW: Raised by decode_8svx for any structural violation.

    RULES:
    - Always fatal to the decode; nothing is repaired or guessed
    - The message names the offending field and what was found
    """


@dataclass(frozen=True)
class SampleBuffer:
    """Mono 8-bit signed PCM samples, stored as raw two's complement bytes.

    WHY: The engine hands back raw bytes and the encoder writes raw bytes,
    but the oracle reasons about signed amplitudes. One immutable type
    serves both views without copying in the common path.

    HOW: ``data`` holds the bytes exactly as they appear in the BODY
    chunk. ``samples`` decodes them to signed ints on demand.

    RULES:
    - Each byte is one sample in the range -128..127
    - Frozen once built; conversions never mutate a buffer in place
    """

    data: bytes = b""

    def __post_init__(self) -> None:
        if not isinstance(self.data, bytes):
            object.__setattr__(self, "data", bytes(self.data))

    @classmethod
    def from_samples(cls, samples: Iterable[int]) -> SampleBuffer:
        """Build a buffer from signed sample values.

        Raises:
            ValueError: If any value falls outside -128..127.
        """
        raw = bytearray()
        for value in samples:
            if not -128 <= value <= 127:
                raise ValueError(
                    "Sample value {} is outside the signed 8-bit range".format(value)
                )
            raw.append(value & 0xFF)
        return cls(bytes(raw))

    @property
    def samples(self) -> List[int]:
        return memoryview(self.data).cast("b").tolist()

    def peak(self) -> int:
        """Largest absolute sample value, 0 for an empty buffer."""
        if not self.data:
            return 0
        return max(abs(value) for value in self.samples)

    def __len__(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class ContainerMetadata:
    """The VHDR fields of an 8SVX file.

    WHY: The header is fixed-shape; only the sample count and rate vary
    per conversion. A record with the fixed values as defaults keeps the
    encoder and the decoder's comparison target identical.

    HOW: Built with for_samples() by the encoder path, or field by field
    by the decoder from the bytes it read.

    RULES:
    - one_shot_sample_count equals the BODY length (without pad)
    - sample_rate is a 16-bit field; callers validate range
    - octave 1, compression 0, volume 0x00010000
    """

    one_shot_sample_count: int
    sample_rate: int
    repeat_sample_count: int = 0
    samples_per_cycle: int = 0
    octave: int = DEFAULT_OCTAVE
    compression: int = NO_COMPRESSION
    volume: int = UNITY_VOLUME

    @classmethod
    def for_samples(cls, sample_count: int, sample_rate: int) -> ContainerMetadata:
        return cls(
            one_shot_sample_count=sample_count,
            sample_rate=sample_rate & 0xFFFF,
        )
