from datetime import datetime, timezone

from syncmynus.backends import Backend
from syncmynus.errors import ProtocolError
from syncmynus.filetree import Module, RemoteFile

T0 = datetime(2022, 1, 10, 8, 0, tzinfo=timezone.utc)


class FakeResponse:
    def __init__(
        self,
        status_code=200,
        json_data=None,
        headers=None,
        cookies=None,
        text="",
        links=None,
        content=b"",
    ):
        self.status_code = status_code
        self._json = json_data
        self.headers = headers or {}
        self.cookies = cookies or {}
        self.text = text
        self.links = links or {}
        self.content = content
        self.closed = False

    def json(self):
        if self._json is None:
            raise ValueError("No JSON object could be decoded")
        return self._json

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i : i + chunk_size]

    def close(self):
        self.closed = True


class FakeBackend(Backend):
    """A backend serving a folder tree kept in dictionaries

    folders maps a folder id to its child Folders, files maps a folder id to
    (file id, name) pairs. Calls listed in failing raise a ProtocolError.
    """

    name = "fake"
    lists_root_files = False

    def __init__(self, modules=(), folders=None, files=None, failing=(), urls=None):
        self.modules = list(modules)
        self.folders = folders or {}
        self.files = files or {}
        self.failing = set(failing)
        self.urls = urls or {}
        self.calls = []

    def _maybe_fail(self, call):
        self.calls.append(call)
        if call in self.failing:
            raise ProtocolError(f"{call} failed")

    def list_modules(self):
        self._maybe_fail(("modules", None))
        return self.modules

    def root_folder_id(self, module):
        return module.id

    def list_folders(self, folder_id):
        self._maybe_fail(("folders", folder_id))
        return self.folders.get(folder_id, [])

    def list_files(self, folder_id, ancestors):
        self._maybe_fail(("files", folder_id))
        return [
            RemoteFile(file_id, name, ancestors, T0, backend=self)
            for file_id, name in self.files.get(folder_id, [])
        ]

    def resolve_download_url(self, file):
        self._maybe_fail(("url", file.id))
        return self.urls.get(file.id, f"https://files.example.com/{file.id}")


def make_file(name, ancestors=("CS1010",), last_updated=T0, backend=None, id=None):
    return RemoteFile(id or name, name, tuple(ancestors), last_updated, backend=backend)


def make_module(id, name):
    return Module(id, name, f"{name} title")
