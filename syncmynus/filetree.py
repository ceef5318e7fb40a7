import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Tuple

if TYPE_CHECKING:
    from syncmynus.backends import Backend

INVALID_CHARS = frozenset('~"#%&*:<>?/\\{|}')
FRACTION = re.compile(r"(?<=:\d\d)\.(\d+)")


def sanitize(name: str) -> str:
    """Strip characters that cannot appear in a path segment

    Names made up of dots only would point at the current or parent
    directory, so their dots are replaced.
    """
    name = "".join(s for s in name if s not in INVALID_CHARS)
    name = name.strip()
    if name and not name.strip("."):
        name = "_" * len(name)
    return name


def parse_timestamp(value: str) -> datetime:
    # LumiNUS sends offsets like +08:00, Canvas sends a trailing Z
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    # fromisoformat only takes 3 or 6 fraction digits before 3.11
    value = FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value, count=1)
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Module:
    id: Any
    name: str
    title: str = ""


@dataclass(frozen=True)
class Folder:
    id: Any
    name: str
    downloadable: bool
    has_subfolders: bool


@dataclass(frozen=True)
class RemoteFile:
    id: Any
    name: str
    ancestors: Tuple[str, ...]
    last_updated: datetime
    backend: "Backend" = field(default=None, compare=False, repr=False)

    @property
    def key(self) -> str:
        """Path relative to the sync root, joined with forward slashes"""
        return "/".join(self.ancestors) + "/" + self.name

    @property
    def module_name(self) -> str:
        return self.ancestors[0] if self.ancestors else ""
