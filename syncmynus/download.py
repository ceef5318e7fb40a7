import logging
from contextlib import closing
from pathlib import Path
from typing import Iterable, List, Optional, Union

import requests
from tqdm import tqdm

from syncmynus.diff import SyncDecision
from syncmynus.errors import ProtocolError, SyncError, TransportError
from syncmynus.filetree import RemoteFile
from syncmynus.index import TEMP_SUFFIX

logger = logging.getLogger(__name__)


def content_length(response: requests.Response) -> Optional[int]:
    try:
        return int(response.headers.get("content-length", 0))
    except ValueError:
        return None


class DownloadOutcome:
    def __init__(
        self, file: RemoteFile, succeeded: bool, error: Optional[Exception] = None
    ):
        self.file = file
        self.succeeded = succeeded
        self.error = error

    def __repr__(self):
        return f"DownloadOutcome(key={self.file.key}, succeeded={self.succeeded}, error={self.error!r})"


class Downloader:
    """Fetches stale files one after another

    A file that fails is recorded and left alone; it is still stale
    locally, so the next cycle picks it up again.
    """

    block_size = 1024

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 60):
        # signed urls must not get the backend's Authorization header
        self.session = session or requests.Session()
        self.timeout = timeout

    def execute(
        self, decisions: Iterable[SyncDecision], root: Union[str, Path]
    ) -> List[DownloadOutcome]:
        root = Path(root).expanduser()
        outcomes = []
        for decision in decisions:
            if not decision.needs_download:
                continue
            file = decision.file
            try:
                self.download(file, self.directory_for(file, root))
            except (SyncError, OSError) as e:
                logger.error(f"Failed to download {file.key}: {e}")
                outcomes.append(DownloadOutcome(file, False, e))
                continue
            outcomes.append(DownloadOutcome(file, True))
        return outcomes

    def directory_for(self, file: RemoteFile, root: Path) -> Path:
        directory = root.joinpath(*file.ancestors)
        try:
            directory.resolve().relative_to(root.resolve())
        except ValueError:
            raise ProtocolError(f"{file.key} would be written outside of {root}") from None
        return directory

    def download(self, file: RemoteFile, directory: Path) -> Path:
        if file.backend is None:
            raise ProtocolError(f"{file.key} has no backend to download it from")
        url = file.backend.resolve_download_url(file)

        directory.mkdir(parents=True, exist_ok=True)
        downloadpath = directory / file.name
        tmp_downloadpath = downloadpath.with_name(downloadpath.name + TEMP_SUFFIX)

        try:
            with closing(
                self.session.get(url, stream=True, timeout=self.timeout)
            ) as response:
                if response.status_code != 200:
                    raise ProtocolError(
                        f"Download of {file.key} returned status {response.status_code}"
                    )
                logger.info(f"Downloading {downloadpath}")
                total_size_in_bytes = content_length(response)
                with tqdm(
                    total=total_size_in_bytes,
                    unit="iB",
                    unit_scale=True,
                    desc=file.name,
                    disable=None,
                ) as progress_bar:
                    with tmp_downloadpath.open("wb") as f:
                        for data in response.iter_content(self.block_size):
                            progress_bar.update(len(data))
                            f.write(data)
        except requests.RequestException as e:
            tmp_downloadpath.unlink(missing_ok=True)
            raise TransportError(f"Download of {file.key} failed: {e}") from e
        except (SyncError, OSError):
            tmp_downloadpath.unlink(missing_ok=True)
            raise

        tmp_downloadpath.replace(downloadpath)
        return downloadpath
