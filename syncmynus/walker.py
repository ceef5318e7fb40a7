"""Recursive discovery of downloadable files on a backend

Folders are expanded depth-first in the order the backend lists them, and a
folder's subfolders are fully expanded before its own files are listed.
Folders that are not downloadable are pruned with everything below them.
"""

import logging
from typing import Any, List, Tuple

from syncmynus.backends import Backend
from syncmynus.errors import SyncError
from syncmynus.filetree import Folder, Module, RemoteFile

logger = logging.getLogger(__name__)


def walk_module(backend: Backend, module: Module) -> List[RemoteFile]:
    root_id = backend.root_folder_id(module)
    return walk(backend, root_id, (module.name,), list_root_files=backend.lists_root_files)


def walk(
    backend: Backend,
    root_folder_id: Any,
    ancestors: Tuple[str, ...],
    list_root_files: bool = True,
) -> List[RemoteFile]:
    """Return every downloadable file below root_folder_id

    Errors while listing the folders of the root propagate. Any other
    listing error is logged and only the affected files are skipped.
    """
    files: List[RemoteFile] = []
    for folder in backend.list_folders(root_folder_id):
        files.extend(_walk_folder(backend, folder, ancestors))

    if list_root_files:
        try:
            files.extend(backend.list_files(root_folder_id, ancestors))
        except SyncError:
            logger.exception(f"Failed to list the files in {'/'.join(ancestors)}")
    return files


def _walk_folder(
    backend: Backend, folder: Folder, ancestors: Tuple[str, ...]
) -> List[RemoteFile]:
    if not folder.downloadable:
        logger.debug(f"Skipping {'/'.join(ancestors + (folder.name,))}, not downloadable")
        return []

    path = ancestors + (folder.name,)
    files: List[RemoteFile] = []

    if folder.has_subfolders:
        try:
            subfolders = backend.list_folders(folder.id)
        except SyncError:
            logger.exception(f"Failed to list the folders in {'/'.join(path)}")
            subfolders = []
        for subfolder in subfolders:
            files.extend(_walk_folder(backend, subfolder, path))

    try:
        files.extend(backend.list_files(folder.id, path))
    except SyncError:
        logger.exception(f"Failed to list the files in {'/'.join(path)}")
    return files
