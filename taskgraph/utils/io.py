"""File I/O helpers."""

import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import IO


@contextmanager
def atomic_write(path: Path | str, encoding: str = "utf-8") -> Iterator[IO[str]]:
    """
    Write a text file atomically.

    Data goes to a temp file in the target directory, which is renamed over
    ``path`` only once the block exits cleanly. Readers never see a partial file.

    Example:
        with atomic_write(index_path) as f:
            f.write(index.model_dump_json(indent=2))
    """
    path = Path(path)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            yield f
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
