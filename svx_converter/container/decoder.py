"""IFF 8SVX container reader used to verify encoder output.

WHY: The only way to trust the encoder is to read its output back and
check every fixed field. The self-test oracle relies on this reader;
nothing in the conversion path does.

HOW: decode_8svx() checks the 48-byte header region field by field,
then slices the BODY using its recorded size. read_8svx() is the same
thing for a file on disk.

RULES:
- Shorter than 48 bytes → MalformedContainer
- Any of FORM / 8SVX / VHDR / BODY wrong → MalformedContainer
- VHDR size other than 20 → MalformedContainer
- BODY size larger than the data that follows → MalformedContainer
- The BODY size field, not the file length, decides how many samples
  are returned, so a trailing pad byte is ignored
"""

from __future__ import annotations

import struct
from pathlib import Path
from typing import Tuple, Union

from svx_converter.container.models import (
    BODY_TAG,
    FORM_TAG,
    FORM_TYPE_TAG,
    HEADER_CHUNK_SIZE,
    HEADER_REGION_SIZE,
    HEADER_TAG,
    ContainerMetadata,
    MalformedContainer,
    SampleBuffer,
)

_VHDR_FORMAT = ">IIIHBBI"


def _expect_tag(data: bytes, offset: int, expected: bytes, field: str) -> None:
    found = data[offset:offset + 4]
    if found != expected:
        raise MalformedContainer(
            "{} tag mismatch at offset {}: expected {!r}, found {!r}".format(
                field, offset, expected, found,
            )
        )


def read_form_size(data: bytes) -> int:
    """Return the FORM size field (bytes 4..8).

    Raises:
        MalformedContainer: If the data is too short to hold the field.
    """
    if len(data) < 8:
        raise MalformedContainer("Container too short to hold a FORM size field")
    return struct.unpack(">I", data[4:8])[0]


def decode_8svx(data: bytes) -> Tuple[ContainerMetadata, SampleBuffer]:
    """Decode an 8SVX container into its header fields and samples.

    Args:
        data: The complete file content.

    Returns:
        (metadata, samples) where samples holds exactly
        ``metadata.one_shot_sample_count`` bytes.

    Raises:
        MalformedContainer: On any structural violation (see module RULES).
    """
    data = bytes(data)
    if len(data) < HEADER_REGION_SIZE:
        raise MalformedContainer(
            "Container is {} bytes; the header region alone needs {}".format(
                len(data), HEADER_REGION_SIZE,
            )
        )

    _expect_tag(data, 0, FORM_TAG, "Form")
    _expect_tag(data, 8, FORM_TYPE_TAG, "Form type")
    _expect_tag(data, 12, HEADER_TAG, "Header")

    header_size = struct.unpack(">I", data[16:20])[0]
    if header_size != HEADER_CHUNK_SIZE:
        raise MalformedContainer(
            "VHDR size is {}, expected {}".format(header_size, HEADER_CHUNK_SIZE)
        )

    (
        one_shot,
        repeat,
        per_cycle,
        rate,
        octave,
        compression,
        volume,
    ) = struct.unpack(_VHDR_FORMAT, data[20:40])

    _expect_tag(data, 40, BODY_TAG, "Body")
    body_size = struct.unpack(">I", data[44:48])[0]

    body_end = HEADER_REGION_SIZE + body_size
    if body_end > len(data):
        raise MalformedContainer(
            "BODY declares {} bytes but only {} follow the header".format(
                body_size, len(data) - HEADER_REGION_SIZE,
            )
        )

    metadata = ContainerMetadata(
        one_shot_sample_count=one_shot,
        sample_rate=rate,
        repeat_sample_count=repeat,
        samples_per_cycle=per_cycle,
        octave=octave,
        compression=compression,
        volume=volume,
    )
    return metadata, SampleBuffer(data[HEADER_REGION_SIZE:body_end])


def read_8svx(path: Union[str, Path]) -> Tuple[ContainerMetadata, SampleBuffer]:
    """Read and decode an 8SVX file from disk. OSError propagates."""
    return decode_8svx(Path(path).read_bytes())
