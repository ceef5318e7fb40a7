import html
import logging
from typing import List, Optional, Sequence

import requests

from syncmynus.download import DownloadOutcome
from syncmynus.errors import SyncError, TransportError

logger = logging.getLogger(__name__)

SEND_MSG_URL = "https://api.telegram.org/bot{}/sendMessage"

# more updated files than this and only the first few are listed
MAX_LISTED_FILES = 4
TRUNCATED_FILES = 3


class Notification:
    def __init__(self, title: str, body: str):
        self.title = title
        self.body = body

    def __repr__(self):
        return f"Notification(title={self.title!r}, body={self.body!r})"

    def __eq__(self, other):
        if not isinstance(other, Notification):
            return NotImplemented
        return self.title == other.title and self.body == other.body

    @property
    def text(self) -> str:
        return f"{self.title}\n{self.body}"


def summarize(outcomes: Sequence[DownloadOutcome]) -> Notification:
    if not outcomes:
        return Notification("Sync", "Your files are up to date")

    lines: List[str] = [
        f"[{outcome.file.module_name}] {outcome.file.name}"
        for outcome in outcomes
        if outcome.succeeded
    ]
    title = f"Sync: {len(lines)}/{len(outcomes)} updated"
    if len(lines) > MAX_LISTED_FILES:
        lines = lines[:TRUNCATED_FILES] + ["..."]
    return Notification(title, "\n".join(lines))


class TelegramError(SyncError):
    def __init__(self, description: str):
        super().__init__(f"TelegramError: {description}")
        self.description = description


class TelegramInfo:
    def __init__(self, bot_api: str, user_id: str):
        self.bot_api = bot_api
        self.user_id = user_id

    def __repr__(self):
        return f"TelegramInfo(user_id={self.user_id})"


def send_message(
    bot_api: str,
    user_id: str,
    message: str,
    session: Optional[requests.Session] = None,
    timeout: float = 60,
) -> None:
    """Send message to user_id through the bot behind bot_api"""
    session = session or requests.Session()
    data = {
        "chat_id": user_id,
        "text": html.escape(message, quote=False),
        "parse_mode": "HTML",
    }
    try:
        response = session.post(
            SEND_MSG_URL.format(bot_api),
            data=data,
            allow_redirects=False,
            timeout=timeout,
        )
    except requests.RequestException as e:
        raise TransportError(f"Failed to reach Telegram: {e}") from e

    if response.status_code != 200:
        raise TelegramError(response.text)
    logger.debug(f"Sent notification to {user_id}")
