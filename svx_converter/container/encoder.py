"""IFF 8SVX container writer.

WHY: The engine produces a bare stream of signed 8-bit samples. Amiga
trackers need that stream wrapped in a FORM/8SVX document with a VHDR
header and a BODY chunk, byte for byte.

HOW: encode_8svx() builds the whole file in memory with struct, in the
order FORM · size · 8SVX · VHDR · 20 · header fields · BODY · size ·
samples · pad. write_8svx() writes that to a temp file in the target
directory and renames it into place, so a reader never sees a partial
container.

RULES:
- Big-endian throughout (struct ">")
- Odd-length bodies get one zero pad byte; the BODY size field excludes it
- FORM size = 4 + 8 + 20 + 8 + body + pad, i.e. file length - 8
- The rate is not validated here, only masked to 16 bits
- Write failures raise OSError; nothing is retried
"""

from __future__ import annotations

import logging
import os
import shutil
import struct
import tempfile
import threading
from pathlib import Path
from typing import Union

from svx_converter.container.models import (
    BODY_TAG,
    CHUNK_PREAMBLE_SIZE,
    FORM_TAG,
    FORM_TYPE_TAG,
    HEADER_CHUNK_SIZE,
    HEADER_TAG,
    ContainerMetadata,
    SampleBuffer,
)

logger = logging.getLogger(__name__)

_UMASK_LOCK = threading.Lock()

# oneShotHiSamples, repeatHiSamples, samplesPerHiCycle, samplesPerSec,
# ctOctave, sCompression, volume
_VHDR_FORMAT = ">IIIHBBI"

SamplesLike = Union[SampleBuffer, bytes, bytearray, memoryview]


def _raw_bytes(samples: SamplesLike) -> bytes:
    if isinstance(samples, SampleBuffer):
        return samples.data
    return bytes(samples)


def encode_8svx(samples: SamplesLike, rate: int) -> bytes:
    """Encode raw 8-bit signed samples as an IFF 8SVX file.

    Args:
        samples: The BODY content, as a SampleBuffer or raw bytes.
        rate: Playback rate in Hz. Only the low 16 bits are stored.

    Returns:
        The complete container, ready to be written to disk.
    """
    body = _raw_bytes(samples)
    body_size = len(body)
    pad = body_size % 2

    metadata = ContainerMetadata.for_samples(body_size, rate)
    form_size = (
        len(FORM_TYPE_TAG)
        + CHUNK_PREAMBLE_SIZE + HEADER_CHUNK_SIZE
        + CHUNK_PREAMBLE_SIZE + body_size + pad
    )

    parts = [
        FORM_TAG,
        struct.pack(">I", form_size),
        FORM_TYPE_TAG,
        HEADER_TAG,
        struct.pack(">I", HEADER_CHUNK_SIZE),
        struct.pack(
            _VHDR_FORMAT,
            metadata.one_shot_sample_count,
            metadata.repeat_sample_count,
            metadata.samples_per_cycle,
            metadata.sample_rate,
            metadata.octave,
            metadata.compression,
            metadata.volume,
        ),
        BODY_TAG,
        struct.pack(">I", body_size),
        body,
    ]
    if pad:
        parts.append(b"\x00")

    return b"".join(parts)


def _default_file_mode() -> int:
    """Mode a plain open() would give a new file under the current umask."""
    # os.umask() can only be read by setting it
    with _UMASK_LOCK:
        umask = os.umask(0)
        os.umask(umask)
    return 0o666 & ~umask


def _match_target_mode(tmp_name: str, target: Path) -> None:
    if target.exists():
        shutil.copymode(str(target), tmp_name)
    else:
        os.chmod(tmp_name, _default_file_mode())


def write_8svx(path: Union[str, Path], samples: SamplesLike, rate: int) -> int:
    """Encode samples and write the container to ``path`` atomically.

    WHY: A crash or full disk mid-write must not leave a truncated .iff
    that a tracker would later choke on.

    HOW: Writes into a NamedTemporaryFile in the destination directory,
    gives it the permissions a plain write would have, then os.replace()
    moves it over the final name.

    RULES:
    - Raises OSError if the directory is missing or unwritable
    - The temp file is removed if anything fails before the rename
    - A new file gets 0o666 minus the umask; an overwritten file keeps
      its existing mode

    Returns:
        Number of bytes written.
    """
    target = Path(path)
    payload = encode_8svx(samples, rate)

    tmp = tempfile.NamedTemporaryFile(
        dir=str(target.parent), prefix=".{}.".format(target.name), suffix=".tmp", delete=False,
    )
    try:
        with tmp:
            tmp.write(payload)
        _match_target_mode(tmp.name, target)
        os.replace(tmp.name, str(target))
    except BaseException:
        try:
            os.unlink(tmp.name)
        except OSError:
            logger.warning("Failed to remove temp file: %s", tmp.name)
        raise

    logger.debug("Wrote %d bytes to %s", len(payload), target)
    return len(payload)
