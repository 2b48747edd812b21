"""Output file naming and collision avoidance.

WHY: AmigaDOS handles short, space-free names best, and a batch run must
never overwrite an earlier output, including one another worker thread
is writing right now.

HOW: derive_stem() turns a source filename into an Amiga-friendly stem.
OutputPathAllocator hands out non-existing paths under a lock and
remembers what it has handed out, so parallel conversions never receive
the same name even before either file exists on disk.

RULES:
- Stem: source name without its last extension, spaces → "_", first 24 chars
- First choice: {stem}.iff; on conflict {stem}_2.iff, {stem}_3.iff, ...
- A path counts as taken if it exists on disk or was already allocated
- allocate() is serialized; everything else here is pure
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Set, Union

from svx_converter.config import MAX_NAME_LENGTH, OUTPUT_EXTENSION


def derive_stem(source: Union[str, Path], max_length: int = MAX_NAME_LENGTH) -> str:
    """Derive an Amiga-friendly output stem from a source path.

    Only the final extension is stripped, so "kick.01.wav" becomes
    "kick.01".
    """
    name = Path(source).name
    if "." in name.lstrip("."):
        name = name.rsplit(".", 1)[0]
    return name.replace(" ", "_")[:max_length]


def default_output_path(source: Union[str, Path]) -> Path:
    """Single-file mode output: derived stem + .iff in the working directory."""
    return Path(derive_stem(source) + OUTPUT_EXTENSION)


class OutputPathAllocator:
    """Hands out unique output paths inside one directory.

    WHY: Checking ``exists()`` and writing later is a race once
    conversions run on a thread pool. The allocator makes the
    check-and-claim step atomic.

    HOW: A threading.Lock guards a set of claimed paths. A candidate is
    free when it is neither claimed nor present on disk.

    RULES:
    - One allocator per output directory per run
    - Claimed names stay claimed even if the conversion later fails
    """

    def __init__(self, output_dir: Union[str, Path], extension: str = OUTPUT_EXTENSION) -> None:
        self._output_dir = Path(output_dir)
        self._extension = extension
        self._claimed: Set[Path] = set()
        self._lock = threading.Lock()

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    def _is_free(self, candidate: Path) -> bool:
        return candidate not in self._claimed and not candidate.exists()

    def allocate(self, source: Union[str, Path]) -> Path:
        """Claim and return a free output path for ``source``."""
        stem = derive_stem(source)
        with self._lock:
            candidate = self._output_dir / "{}{}".format(stem, self._extension)
            counter = 2
            while not self._is_free(candidate):
                candidate = self._output_dir / "{}_{}{}".format(stem, counter, self._extension)
                counter += 1
            self._claimed.add(candidate)
            return candidate
