import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Optional

import requests

from syncmynus.errors import (
    CodeNotFoundError,
    NotFoundError,
    ProtocolError,
    TransportError,
)
from syncmynus.storage import CREDENTIALS_KEY, Storage

try:
    import keyring
except ImportError:
    if not TYPE_CHECKING:
        keyring = None

logger = logging.getLogger(__name__)

CODE_URL = "https://vafs.nus.edu.sg/adfs/oauth2/authorize"
JWT_URL = "https://luminus.nus.edu.sg/v2/api/login/adfstoken"
REDIRECT_URI = "https://luminus.nus.edu.sg/auth/callback"
RESOURCE = "sg_edu_nus_oauth"
CLIENT_ID = "E10493A3B1024F14BDC7D0D8B9F649E9-234390"
GRANT_TYPE = "authorization_code"
AUTH_METHOD = "FormsAuthentication"
STATE = "V6E9kYSq3DDQ72fSZZYFzLNKFT9dz38vpoR93IL8"
CODE_PARAMS = {
    "response_type": "code",
    "client_id": CLIENT_ID,
    "state": STATE,
    "redirect_uri": REDIRECT_URI,
    "scope": "",
    "resource": RESOURCE,
    "nonce": STATE,
}
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:94.0) Gecko/20100101 Firefox/94.0"
)

KEYRING_SERVICE = "syncmynus"
LUMINUS_TOKEN_KEY = "luminus_token"
CANVAS_TOKEN_KEY = "canvas_token"

DEFAULT_TOKEN_LIFETIME = timedelta(hours=24)
EXPIRY_GRACE = timedelta(hours=1)


class Credentials:
    def __init__(self, username: str, password: Optional[str]):
        self.username = username
        self.password = password

    def __repr__(self):
        return f"Credentials(username={self.username})"


class TokenData:
    """A bearer token together with the moment it stops being usable

    An expiry of None marks a token that never expires, such as a
    Canvas access token generated by the user.
    """

    def __init__(self, token: str, expiry: Optional[datetime] = None):
        self.token = token
        self.expiry = expiry

    def __repr__(self):
        return f"TokenData(expiry={self.expiry})"

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expiry is None:
            return False
        now = now or datetime.now(timezone.utc)
        return self.expiry - now <= EXPIRY_GRACE


def extract_code(location: str) -> str:
    """Cut the authorization code out of an ADFS redirect location"""
    start = location.find("code=")
    end = location.find("&state=")
    if start == -1 or end == -1 or end <= start + len("code="):
        raise CodeNotFoundError(location)
    return location[start + len("code=") : end]


class LuminusAuth:
    """Exchanges NUSNET credentials for a LumiNUS bearer token

    ADFS needs the login form twice: the first POST only hands out
    session cookies, the second one (with those cookies) answers with a
    redirect to the LumiNUS callback carrying the authorization code.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        lifetime: Optional[timedelta] = DEFAULT_TOKEN_LIFETIME,
        timeout: float = 60,
    ) -> None:
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT})
        # None means trusting the expires_in the server sends
        self.lifetime = lifetime
        self.timeout = timeout

    def acquire(self, credentials: Credentials) -> TokenData:
        if not credentials.username or not credentials.password:
            raise ProtocolError("Username and password are required to log in")
        code = self.get_code(credentials)
        logger.debug("Got authorization code from ADFS")
        return self.exchange_code(code)

    def get_code(self, credentials: Credentials) -> str:
        data = {
            "UserName": credentials.username,
            "Password": credentials.password,
            "AuthMethod": AUTH_METHOD,
        }
        # every login starts from an empty cookie jar
        self.session.cookies.clear()
        try:
            first = self.session.post(
                CODE_URL,
                params=CODE_PARAMS,
                data=data,
                allow_redirects=False,
                timeout=self.timeout,
            )
            if not first.cookies:
                raise ProtocolError(
                    f"ADFS did not set any session cookies (status {first.status_code})"
                )
            second = self.session.post(
                CODE_URL,
                params=CODE_PARAMS,
                data=data,
                cookies=first.cookies,
                allow_redirects=False,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransportError(f"Failed to reach ADFS: {e}") from e

        return extract_code(second.headers.get("Location", ""))

    def exchange_code(self, code: str) -> TokenData:
        data = {
            "redirect_uri": REDIRECT_URI,
            "code": code,
            "resource": RESOURCE,
            "client_id": CLIENT_ID,
            "grant_type": GRANT_TYPE,
        }
        try:
            response = self.session.post(
                JWT_URL, data=data, allow_redirects=False, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise TransportError(f"Failed to reach LumiNUS: {e}") from e

        if response.status_code != 200:
            raise ProtocolError(
                f"Token exchange failed with status {response.status_code}: {response.text[:200]}"
            )
        try:
            body = response.json()
        except ValueError as e:
            raise ProtocolError(f"Token response is not JSON: {response.text[:200]}") from e

        token = body.get("access_token") if isinstance(body, dict) else None
        if not token:
            raise ProtocolError(f"Token response has no access_token: {body}")

        now = datetime.now(timezone.utc)
        if self.lifetime:
            expiry = now + self.lifetime
        else:
            expiry = now + timedelta(seconds=int(body.get("expires_in") or 0))
        return TokenData(token, expiry)


def save_credentials(
    storage: Storage, credentials: Credentials, use_keyring: bool = False
) -> None:
    if use_keyring:
        if keyring is None:
            raise RuntimeError("keyring is not installed")
        keyring.set_password(KEYRING_SERVICE, credentials.username, credentials.password)
        credentials = Credentials(credentials.username, None)
    storage.save(CREDENTIALS_KEY, credentials)


def load_credentials(storage: Storage) -> Credentials:
    credentials = storage.load(CREDENTIALS_KEY)
    if credentials.password is None:
        if keyring is None:
            raise RuntimeError(
                "Your password is kept in the system keyring, but keyring is not installed"
            )
        password = keyring.get_password(KEYRING_SERVICE, credentials.username)
        if password is None:
            raise NotFoundError(f"keyring entry for {credentials.username}")
        credentials = Credentials(credentials.username, password)
    return credentials


class TokenStore:
    """Hands out valid bearer tokens, logging in again when the cache is stale"""

    def __init__(self, storage: Storage, auth: Optional[LuminusAuth] = None):
        self.storage = storage
        self.auth = auth or LuminusAuth()

    def luminus_token(self) -> TokenData:
        try:
            cached = self.storage.load(LUMINUS_TOKEN_KEY)
        except NotFoundError:
            cached = None

        if cached is not None and not cached.is_expired():
            return cached

        logger.info("LumiNUS token missing or about to expire, logging in again")
        token = self.auth.acquire(load_credentials(self.storage))
        self.storage.save(LUMINUS_TOKEN_KEY, token)
        return token

    def canvas_token(self) -> TokenData:
        return self.storage.load(CANVAS_TOKEN_KEY)

    def save_canvas_token(self, token: str) -> None:
        self.storage.save(CANVAS_TOKEN_KEY, TokenData(token))
