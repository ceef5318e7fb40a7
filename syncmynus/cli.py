import getpass
import json
import logging
import os
import sys
from argparse import ArgumentParser
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from syncmynus.auth import Credentials, TokenStore, save_credentials
from syncmynus.errors import SyncError
from syncmynus.notify import TelegramInfo
from syncmynus.storage import TELEGRAM_KEY, Storage, default_data_dir
from syncmynus.sync import DISABLED, SyncService

try:
    import keyring
except ImportError:
    if not TYPE_CHECKING:
        keyring = None

logger = logging.getLogger(__name__)


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="python3 -m syncmynus",
        description="Synchronization client for LumiNUS and Canvas. All optional arguments override those in config.json.",
    )
    if keyring:
        parser.add_argument(
            "--secretservice",
            action="store_true",
            help="Use system's keyring for storing and retrieving your password",
        )
    parser.add_argument("--user", default=None, help="set your NUSNET username")
    parser.add_argument("--password", default=None, help="set your NUSNET password")
    parser.add_argument(
        "--canvastoken", default=None, help="set your Canvas API access token"
    )
    parser.add_argument("--config", default=None, help="set your configuration file")
    parser.add_argument(
        "--basedir",
        default=None,
        help="specify the directory where all files will be synced",
    )
    parser.add_argument(
        "--frequency",
        type=int,
        default=None,
        help="sync every FREQUENCY hours, -1 disables scheduled syncing. Defaults to -1.",
    )
    parser.add_argument(
        "--tokenlifetime",
        type=int,
        default=None,
        help="hours a LumiNUS token is trusted for, 0 uses the lifetime the server reports. Defaults to 24.",
    )
    parser.add_argument(
        "--datadir",
        default=None,
        help="specify where credentials and tokens are stored",
    )
    parser.add_argument(
        "--telegrambot", default=None, help="set the API token of your Telegram bot"
    )
    parser.add_argument(
        "--telegramuser",
        default=None,
        help="set the Telegram chat id notifications are sent to",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="run a single sync and exit, even if a frequency is set",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="do not download any files, only list what would be downloaded",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_const",
        dest="loglevel",
        const=logging.INFO,
        default=logging.WARNING,
        help="show what is being synced",
    )
    parser.add_argument(
        "--debug",
        action="store_const",
        dest="loglevel",
        const=logging.DEBUG,
        help="show information useful for debugging",
    )
    return parser


def load_config(path: Optional[str]) -> Dict[str, Any]:
    config: Dict[str, Any] = {}
    if path:
        overwrite_config = Path(path)
        if overwrite_config.is_file():
            with overwrite_config.open() as f:
                config = json.load(f)
        return config

    global_config = (
        Path(os.environ.get("XDG_CONFIG_HOME", Path("~/.config").expanduser()))
        / "syncmynus"
        / "config.json"
    )
    if global_config.is_file():
        with global_config.open() as f:
            config.update(json.load(f))

    local_config = Path("config.json")
    if local_config.is_file():
        with local_config.open() as f:
            config.update(json.load(f))
    return config


def merge_args(config: Dict[str, Any], args) -> Dict[str, Any]:
    config["user"] = args.user or config.get("user")
    config["password"] = args.password or config.get("password")
    config["canvas_token"] = args.canvastoken or config.get("canvas_token")
    config["basedir"] = args.basedir or config.get("basedir")
    config["frequency"] = (
        args.frequency if args.frequency is not None else config.get("frequency", DISABLED)
    )
    config["token_lifetime_hours"] = (
        args.tokenlifetime
        if args.tokenlifetime is not None
        else config.get("token_lifetime_hours", 24)
    )
    config["data_dir"] = args.datadir or config.get("data_dir") or str(default_data_dir())
    telegram = config.get("telegram") or {}
    config["telegram"] = {
        "bot_api": args.telegrambot or telegram.get("bot_api"),
        "user_id": args.telegramuser or telegram.get("user_id"),
    }
    config["use_secret_service"] = (
        getattr(args, "secretservice", None) if keyring else None
    ) or config.get("use_secret_service")
    config["backends"] = config.get("backends") or ["luminus", "canvas"]
    return config


def store_secrets(config: Dict[str, Any], storage: Storage) -> None:
    """Remember everything a later, unattended sync needs to log in"""
    use_keyring = bool(keyring and config.get("use_secret_service"))
    password = config.get("password")
    if use_keyring and config.get("user") and not password:
        if keyring.get_password("syncmynus", config["user"]) is None:
            password = getpass.getpass("Password:")

    if config.get("user") and password:
        save_credentials(
            storage, Credentials(config["user"], password), use_keyring=use_keyring
        )

    if config.get("canvas_token"):
        TokenStore(storage).save_canvas_token(config["canvas_token"])

    telegram = config["telegram"]
    if telegram.get("bot_api") and telegram.get("user_id"):
        storage.save(TELEGRAM_KEY, TelegramInfo(telegram["bot_api"], telegram["user_id"]))


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    config = merge_args(load_config(args.config), args)

    logging.basicConfig(level=args.loglevel, format="%(levelname)s: %(message)s")

    if (
        keyring
        and config.get("use_secret_service")
        and config.get("password")
        and not args.password
    ):
        logger.critical("You need to remove your password from your config file!")
        sys.exit(1)

    if config["frequency"] != DISABLED and config["frequency"] < 1:
        logger.critical(
            f"The sync frequency must be at least one hour or -1 to disable it, got {config['frequency']}"
        )
        sys.exit(1)

    storage = Storage(config["data_dir"])
    store_secrets(config, storage)

    if not config.get("basedir"):
        logger.critical(
            "You need to specify the directory to sync to in the config file or through --basedir!"
        )
        sys.exit(1)

    service = SyncService(config, storage)

    if args.dry_run:
        try:
            decisions = service.plan(config["basedir"])
        except (SyncError, OSError) as e:
            logger.critical(f"Failed to index {config['basedir']}: {e}")
            sys.exit(1)
        for decision in decisions:
            if decision.needs_download:
                print(decision.file.key)
        sys.exit(0)

    if args.once or config["frequency"] == DISABLED:
        print("Syncing...")
        notification = service.run_cycle()
        if notification:
            print(notification.text)
        return

    service.init()
    notification = service.run_cycle()
    if notification:
        print(notification.text)
    print(f"Next sync at {service.next_run()}")
    service.run_forever()
