from datetime import datetime
from typing import Iterable, List, Mapping

from syncmynus.filetree import RemoteFile

SKIP = "skip"
DOWNLOAD = "download"


class SyncDecision:
    def __init__(self, file: RemoteFile, action: str):
        self.file = file
        self.action = action

    def __repr__(self):
        return f"SyncDecision(key={self.file.key}, action={self.action})"

    def __eq__(self, other):
        if not isinstance(other, SyncDecision):
            return NotImplemented
        return self.file == other.file and self.action == other.action

    @property
    def needs_download(self) -> bool:
        return self.action == DOWNLOAD


def diff(
    remote_files: Iterable[RemoteFile], local_index: Mapping[str, datetime]
) -> List[SyncDecision]:
    """Decide for every remote file whether the local copy is stale

    A file is downloaded when no local file sits at its key or the local
    one is strictly older. Equal timestamps count as up to date.
    """
    decisions = []
    for file in remote_files:
        local_last_updated = local_index.get(file.key)
        if local_last_updated is None or local_last_updated < file.last_updated:
            decisions.append(SyncDecision(file, DOWNLOAD))
        else:
            decisions.append(SyncDecision(file, SKIP))
    return decisions
