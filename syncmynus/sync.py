import logging
import threading
import time
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import schedule

from syncmynus.auth import LuminusAuth, TokenData, TokenStore
from syncmynus.backends import BACKENDS, Backend
from syncmynus.diff import SyncDecision, diff
from syncmynus.download import DownloadOutcome, Downloader
from syncmynus.errors import NotFoundError, SyncError
from syncmynus.filetree import RemoteFile
from syncmynus.index import build_index
from syncmynus.notify import Notification, send_message, summarize
from syncmynus.storage import TELEGRAM_KEY, Storage
from syncmynus.walker import walk_module

logger = logging.getLogger(__name__)

DISABLED = -1
DEFAULT_BACKENDS = ["luminus", "canvas"]


def token_lifetime(config: Dict[str, Any]) -> Optional[timedelta]:
    hours = config.get("token_lifetime_hours", 24)
    return timedelta(hours=hours) if hours else None


class SyncService:
    """Runs sync cycles and owns the job that schedules them

    Only one cycle runs at a time; a tick that arrives while another cycle
    is still busy is dropped.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        storage: Storage,
        token_store: Optional[TokenStore] = None,
        downloader: Optional[Downloader] = None,
        notifier: Optional[Callable[[Notification], None]] = None,
        scheduler: Optional[schedule.Scheduler] = None,
    ) -> None:
        self.config = config
        self.storage = storage
        self.timeout = config.get("request_timeout", 60)
        self.tokens = token_store or TokenStore(
            storage, LuminusAuth(lifetime=token_lifetime(config), timeout=self.timeout)
        )
        self.downloader = downloader or Downloader(timeout=self.timeout)
        self.notifier = notifier or self.send_telegram
        self.scheduler = scheduler or schedule.Scheduler()
        self.job: Optional[schedule.Job] = None
        self.root = config.get("basedir")
        self.last_outcomes: List[DownloadOutcome] = []
        self.last_notification: Optional[Notification] = None
        self._lock = threading.Lock()

    # Scheduling

    def init(self) -> Optional[schedule.Job]:
        return self.rerun(self.config.get("basedir"), self.config.get("frequency", DISABLED))

    def rerun(self, root: Optional[str], frequency: int) -> Optional[schedule.Job]:
        """Drop the current job and schedule a new one every frequency hours"""
        self.scheduler.clear()
        self.job = None
        self.root = root

        if frequency == DISABLED:
            logger.info("Scheduled syncing is disabled")
            return None
        if frequency < 1:
            raise ValueError(f"Sync frequency must be at least one hour, got {frequency}")

        self.job = self.scheduler.every(frequency).hours.do(self.run_cycle)
        logger.info(f"Syncing every {frequency} hours, next run at {self.next_run()}")
        return self.job

    def next_run(self) -> Optional[datetime]:
        return self.job.next_run if self.job else None

    def last_run(self) -> Optional[datetime]:
        return self.job.last_run if self.job else None

    def run_forever(self, poll_interval: float = 1) -> None:
        while self.job is not None:
            self.scheduler.run_pending()
            time.sleep(poll_interval)

    # Sync cycle

    def token_for(self, name: str) -> TokenData:
        if name == "luminus":
            return self.tokens.luminus_token()
        if name == "canvas":
            return self.tokens.canvas_token()
        raise NotFoundError(f"backend {name}")

    def connect_backends(self) -> List[Backend]:
        backends = []
        for name in self.config.get("backends") or DEFAULT_BACKENDS:
            try:
                token = self.token_for(name)
            except (SyncError, RuntimeError) as e:
                logger.error(f"Skipping {name}, could not get a token: {e}")
                continue
            backends.append(BACKENDS[name](token.token, timeout=self.timeout))
        return backends

    def collect_remote_files(self, backends: List[Backend]) -> List[RemoteFile]:
        files: List[RemoteFile] = []
        for backend in backends:
            try:
                modules = backend.list_modules()
            except SyncError:
                logger.exception(f"Failed to get the modules from {backend.name}")
                continue

            for module in modules:
                logger.info(f"Syncing {module.name} [{backend.name}]...")
                try:
                    files.extend(walk_module(backend, module))
                except SyncError:
                    logger.exception(f"Failed to sync the module {module}")
        return files

    def plan(self, root: str) -> List[SyncDecision]:
        """Compare the remote files against what lies below root

        Raises when the local index cannot be built.
        """
        backends = self.connect_backends()
        local_index = build_index(root)
        return diff(self.collect_remote_files(backends), local_index)

    def run_cycle(self) -> Optional[Notification]:
        if not self._lock.acquire(blocking=False):
            logger.warning("The previous sync is still running, skipping this one")
            return None
        try:
            return self._run_cycle()
        finally:
            self._lock.release()

    def _run_cycle(self) -> Notification:
        logger.info(f"Sync started: {datetime.now().isoformat(timespec='seconds')}")

        root = self.root
        if not root or not Path(root).expanduser().is_dir():
            logger.error(f"Sync directory {root!r} is not set or does not exist")
            return self._finish(
                Notification("Sync", "Your sync directory is not set or does not exist")
            )

        try:
            decisions = self.plan(root)
        except (SyncError, OSError):
            logger.exception("Failed to index the sync directory")
            return self._finish(
                Notification("Sync", "Failed to get current downloaded files")
            )

        self.last_outcomes = self.downloader.execute(decisions, root)
        return self._finish(summarize(self.last_outcomes))

    def _finish(self, notification: Notification) -> Notification:
        self.last_notification = notification
        logger.info(f"{notification.title}: {notification.body}")
        try:
            self.notifier(notification)
        except SyncError:
            logger.exception("Failed to deliver the notification")
        logger.info(f"Sync completed: {datetime.now().isoformat(timespec='seconds')}")
        return notification

    def send_telegram(self, notification: Notification) -> None:
        try:
            telegram_info = self.storage.load(TELEGRAM_KEY)
        except NotFoundError:
            logger.debug("Telegram is not set up, not sending anything")
            return
        send_message(
            telegram_info.bot_api,
            telegram_info.user_id,
            notification.text,
            timeout=self.timeout,
        )
