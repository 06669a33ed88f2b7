import os
from pathlib import Path
from tempfile import mkstemp


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """
    Replaces `path` with `data` in one step; readers see the old or the new file, never a mix.

    The temporary file lives next to the target so `os.replace` stays on one filesystem.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    tmp_path = Path(tmp)
    try:
        with os.fdopen(fd, "wb") as f:
            _ = f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
