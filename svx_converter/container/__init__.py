"""IFF 8SVX container encoding and decoding.

WHY: OctaMED and other Amiga trackers load samples as IFF 8SVX files:
a FORM chunk holding a fixed 20-byte VHDR header and a BODY of signed
8-bit PCM. The layout must be bit-exact or the tracker rejects the file.

HOW: models.py holds the tag literals and the typed records,
encoder.py writes the byte layout, decoder.py reads it back and
validates every fixed field. The decoder exists to verify the encoder;
the conversion path itself only encodes.

RULES:
- All multi-byte integers are big-endian
- BODY is padded to even length; the pad byte is never counted
- The decoder never repairs a malformed file, it raises MalformedContainer
"""

from svx_converter.container.decoder import decode_8svx, read_8svx, read_form_size
from svx_converter.container.encoder import encode_8svx, write_8svx
from svx_converter.container.models import (
    HEADER_REGION_SIZE,
    ContainerMetadata,
    MalformedContainer,
    SampleBuffer,
)

__all__ = [
    "HEADER_REGION_SIZE",
    "ContainerMetadata",
    "MalformedContainer",
    "SampleBuffer",
    "decode_8svx",
    "encode_8svx",
    "read_8svx",
    "read_form_size",
    "write_8svx",
]
