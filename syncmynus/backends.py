import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

import requests

from syncmynus.auth import USER_AGENT
from syncmynus.errors import ProtocolError, TransportError
from syncmynus.filetree import Folder, Module, RemoteFile, parse_timestamp, sanitize

logger = logging.getLogger(__name__)


@contextmanager
def parsing(what: str) -> Iterator[None]:
    """Turn a malformed API entry into a ProtocolError"""
    try:
        yield
    except (KeyError, TypeError, ValueError) as e:
        raise ProtocolError(f"Unexpected {what} entry: {e!r}") from e


class Backend:
    """One LMS with a folder tree of downloadable files

    Subclasses translate the platform's REST responses into Module, Folder
    and RemoteFile objects so the walker and downloader never have to know
    which platform they are talking to.
    """

    name = ""
    # Whether the module root can hold files next to its folders
    lists_root_files = True

    def __init__(
        self, token: str, session: Optional[requests.Session] = None, timeout: float = 60
    ) -> None:
        self.session = session or requests.Session()
        self.session.headers.update(
            {"Authorization": f"Bearer {token}", "User-Agent": USER_AGENT}
        )
        self.timeout = timeout

    def __repr__(self):
        return f"{type(self).__name__}()"

    def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(f"GET {url} failed: {e}") from e
        if response.status_code != 200:
            raise ProtocolError(
                f"GET {url} returned status {response.status_code}: {response.text[:200]}"
            )
        return response

    def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = self._get(url, params)
        logger.debug(f"GET {url}: {response.text[:500]}")
        try:
            return response.json()
        except ValueError as e:
            raise ProtocolError(f"GET {url} did not return JSON") from e

    def _paginate(
        self, url: str, params: Optional[Dict[str, Any]] = None
    ) -> Iterator[Dict[str, Any]]:
        raise NotImplementedError

    def list_modules(self) -> List[Module]:
        raise NotImplementedError

    def root_folder_id(self, module: Module) -> Any:
        raise NotImplementedError

    def list_folders(self, folder_id: Any) -> List[Folder]:
        raise NotImplementedError

    def list_files(self, folder_id: Any, ancestors: Tuple[str, ...]) -> List[RemoteFile]:
        raise NotImplementedError

    def resolve_download_url(self, file: RemoteFile) -> str:
        raise NotImplementedError


class LuminusBackend(Backend):
    name = "luminus"
    lists_root_files = False

    api_url = "https://luminus.nus.edu.sg/v2/api"
    modules_url = api_url + "/module/?populate=Creator,termDetail,isMandatory"
    folders_url = (
        api_url + "/files/?populate=totalFileCount,subFolderCount,TotalSize&ParentID={}"
    )
    files_url = api_url + "/files/{}/file?populate=Creator,lastUpdatedUser,comment"
    download_url = api_url + "/files/file/{}/downloadurl"

    def _paginate(
        self, url: str, params: Optional[Dict[str, Any]] = None
    ) -> Iterator[Dict[str, Any]]:
        # LumiNUS returns the whole listing in one response
        body = self._get_json(url, params)
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, list):
            raise ProtocolError(f"Unexpected response from {url}: {body}")
        yield from data

    def list_modules(self) -> List[Module]:
        modules = []
        for content in self._paginate(self.modules_url):
            with parsing("module"):
                modules.append(
                    Module(
                        content["id"],
                        sanitize(content["name"]),
                        content.get("courseName", ""),
                    )
                )
        return modules

    def root_folder_id(self, module: Module) -> Any:
        return module.id

    def list_folders(self, folder_id: Any) -> List[Folder]:
        folders = []
        for content in self._paginate(self.folders_url.format(folder_id)):
            # only folders the user may open carry an access entry
            if "access" not in content:
                continue
            with parsing("folder"):
                folders.append(
                    Folder(
                        content["id"],
                        sanitize(content["name"]),
                        bool(content["isActive"]) and not content["allowUpload"],
                        int(content["subFolderCount"]) > 0,
                    )
                )
        return folders

    def list_files(self, folder_id: Any, ancestors: Tuple[str, ...]) -> List[RemoteFile]:
        files = []
        for content in self._paginate(self.files_url.format(folder_id)):
            with parsing("file"):
                files.append(
                    RemoteFile(
                        content["id"],
                        sanitize(content["name"]),
                        ancestors,
                        parse_timestamp(content["lastUpdatedDate"]),
                        backend=self,
                    )
                )
        return files

    def resolve_download_url(self, file: RemoteFile) -> str:
        body = self._get_json(self.download_url.format(file.id))
        url = body.get("data") if isinstance(body, dict) else None
        if not url or not isinstance(url, str):
            raise ProtocolError(f"No download url for {file.name}: {body}")
        return url


class CanvasBackend(Backend):
    name = "canvas"

    api_url = "https://canvas.nus.edu.sg/api/v1"
    per_page = 100

    def _paginate(
        self, url: str, params: Optional[Dict[str, Any]] = None
    ) -> Iterator[Dict[str, Any]]:
        # Canvas pages through the Link header, the next url already carries
        # every query parameter
        params = {**(params or {}), "per_page": self.per_page}
        next_url: Optional[str] = url
        while next_url:
            response = self._get(next_url, params)
            try:
                data = response.json()
            except ValueError as e:
                raise ProtocolError(f"GET {next_url} did not return JSON") from e
            if not isinstance(data, list):
                raise ProtocolError(f"Unexpected response from {next_url}: {data}")
            yield from data
            next_url = response.links.get("next", {}).get("url")
            params = None

    def list_modules(self) -> List[Module]:
        modules = []
        for content in self._paginate(
            f"{self.api_url}/courses", {"enrollment_state": "active"}
        ):
            if content.get("access_restricted_by_date"):
                logger.debug(f"Skipping restricted course {content.get('id')}")
                continue
            with parsing("course"):
                modules.append(
                    Module(
                        content["id"],
                        sanitize(content["course_code"]),
                        content.get("name", ""),
                    )
                )
        return modules

    def root_folder_id(self, module: Module) -> Any:
        body = self._get_json(f"{self.api_url}/courses/{module.id}/folders/root")
        with parsing("root folder"):
            return body["id"]

    def list_folders(self, folder_id: Any) -> List[Folder]:
        folders = []
        for content in self._paginate(f"{self.api_url}/folders/{folder_id}/folders"):
            with parsing("folder"):
                folders.append(
                    Folder(
                        content["id"],
                        sanitize(content["name"]),
                        not content.get("locked_for_user", False)
                        and not content.get("hidden_for_user", False),
                        int(content.get("folders_count") or 0) > 0,
                    )
                )
        return folders

    def list_files(self, folder_id: Any, ancestors: Tuple[str, ...]) -> List[RemoteFile]:
        files = []
        for content in self._paginate(f"{self.api_url}/folders/{folder_id}/files"):
            if content.get("hidden_for_user") or content.get("locked_for_user"):
                continue
            with parsing("file"):
                # display_name is what lecturers see and rename, filename is
                # the name of the upload
                files.append(
                    RemoteFile(
                        content["id"],
                        sanitize(content.get("display_name") or content["filename"]),
                        ancestors,
                        parse_timestamp(content["updated_at"]),
                        backend=self,
                    )
                )
        return files

    def resolve_download_url(self, file: RemoteFile) -> str:
        body = self._get_json(f"{self.api_url}/files/{file.id}")
        url = body.get("url") if isinstance(body, dict) else None
        if not url or not isinstance(url, str):
            raise ProtocolError(f"No download url for {file.name}: {body}")
        return url


BACKENDS = {backend.name: backend for backend in (LuminusBackend, CanvasBackend)}
