from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Union

from syncmynus.errors import NotFoundError

TEMP_SUFFIX = ".temp"


def build_index(root: Union[str, Path]) -> Dict[str, datetime]:
    """Map every file below root to its modification time

    Keys are relative to root and always use forward slashes so they line
    up with RemoteFile.key on every platform.
    """
    root = Path(root).expanduser()
    if not root.is_dir():
        raise NotFoundError(str(root))

    index = {}
    for path in root.rglob("*"):
        # unfinished downloads do not count as downloaded
        if not path.is_file() or path.suffix == TEMP_SUFFIX:
            continue
        index[path.relative_to(root).as_posix()] = datetime.fromtimestamp(
            path.stat().st_mtime, tz=timezone.utc
        )
    return index
