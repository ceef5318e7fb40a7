import logging
import os
import pickle
from pathlib import Path
from typing import Any, Union

from syncmynus.errors import NotFoundError

logger = logging.getLogger(__name__)

CREDENTIALS_KEY = "credentials"
TELEGRAM_KEY = "telegram"


def default_data_dir() -> Path:
    return (
        Path(os.environ.get("XDG_DATA_HOME", Path("~/.local/share").expanduser()))
        / "syncmynus"
    )


class Storage:
    """Pickles values into one file per key below a data directory"""

    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir).expanduser()

    def path_for(self, key: str) -> Path:
        return self.data_dir / f"{key}.pickle"

    def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def save(self, key: str, value: Any) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(key)
        tmp_path = path.with_suffix(path.suffix + ".temp")
        with tmp_path.open("wb") as f:
            pickle.dump(value, f)
        tmp_path.replace(path)
        logger.debug(f"Saved {key} to {path}")

    def load(self, key: str) -> Any:
        path = self.path_for(key)
        if not path.is_file():
            raise NotFoundError(str(path))
        with path.open("rb") as f:
            return pickle.load(f)

    def delete(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)
