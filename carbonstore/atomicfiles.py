"""Writing files atomically through a temporary file and rename."""

from __future__ import annotations

import os
import tempfile

__all__ = ["write_file"]


def write_file(name: str | os.PathLike, body: bytes) -> None:
    """Write ``body`` to ``name`` so readers see either the old or the new file."""
    directory = os.path.dirname(os.fspath(name)) or "."
    fd, tmp_name = tempfile.mkstemp(dir=directory, prefix=".tmp")
    try:
        with os.fdopen(fd, "wb") as tmp:
            tmp.write(body)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_name, name)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise