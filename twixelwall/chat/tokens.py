"""Twitch user-token persistence and OAuth refresh via id.twitch.tv."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Callable, Optional

import requests

from ..core.errors import AuthenticationError

logger = logging.getLogger(__name__)

TOKEN_URL = "https://id.twitch.tv/oauth2/token"
DEVICE_URL = "https://id.twitch.tv/oauth2/device"
DEVICE_GRANT = "urn:ietf:params:oauth:grant-type:device_code"
CHAT_SCOPES = ["chat:read"]

# Refresh tokens that expire within this many seconds
EXPIRY_MARGIN = 60
REQUEST_TIMEOUT = 10


@dataclass
class UserToken:
    """An OAuth user access token with its refresh token."""
    access_token: str
    refresh_token: str
    expires_at: float = 0.0  # unix time, 0 = unknown
    scopes: list[str] = field(default_factory=list)

    def expires_soon(self, now: Optional[float] = None) -> bool:
        if not self.expires_at:
            return False
        now = time.time() if now is None else now
        return self.expires_at - now < EXPIRY_MARGIN

    @classmethod
    def from_response(cls, data: dict, now: Optional[float] = None) -> "UserToken":
        """Build a token from an id.twitch.tv token endpoint response."""
        now = time.time() if now is None else now
        try:
            expires_in = data.get("expires_in")
            return cls(
                access_token=data["access_token"],
                refresh_token=data["refresh_token"],
                expires_at=now + expires_in if expires_in else 0.0,
                scopes=list(data.get("scope") or []),
            )
        except (KeyError, TypeError) as e:
            raise AuthenticationError(f"Unexpected token response: {e}") from e


def _post(url: str, data: dict) -> dict:
    try:
        response = requests.post(url, data=data, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
        return response.json()
    except requests.RequestException as e:
        raise AuthenticationError(f"Token request to {url} failed: {e}") from e
    except ValueError as e:
        raise AuthenticationError(f"Token endpoint returned invalid JSON: {e}") from e


def refresh_token(token: UserToken, client_id: str, client_secret: str) -> UserToken:
    """Exchange the refresh token for a new access token."""
    data = _post(TOKEN_URL, {
        "client_id": client_id,
        "client_secret": client_secret,
        "grant_type": "refresh_token",
        "refresh_token": token.refresh_token,
    })
    return UserToken.from_response(data)


def device_authorize(
    client_id: str,
    scopes: list[str] = CHAT_SCOPES,
    prompt: Callable[[str, str], None] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> UserToken:
    """Run the OAuth device-code flow and block until the user approves.

    ``prompt`` is called with the verification URL and user code.
    """
    start = _post(DEVICE_URL, {"client_id": client_id, "scopes": " ".join(scopes)})
    try:
        device_code = start["device_code"]
        interval = float(start.get("interval", 5))
        deadline = time.time() + float(start.get("expires_in", 1800))
        uri, user_code = start["verification_uri"], start["user_code"]
    except (KeyError, TypeError, ValueError) as e:
        raise AuthenticationError(f"Unexpected device authorization response: {e}") from e

    if prompt is None:
        print(f"Open {uri} and enter code {user_code} to authorize twixelwall", flush=True)
    else:
        prompt(uri, user_code)

    payload = {
        "client_id": client_id,
        "scopes": " ".join(scopes),
        "device_code": device_code,
        "grant_type": DEVICE_GRANT,
    }
    while time.time() < deadline:
        sleep(interval)
        try:
            response = requests.post(TOKEN_URL, data=payload, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            raise AuthenticationError(f"Device token polling failed: {e}") from e
        if response.ok:
            return UserToken.from_response(response.json())
        # 400 with "authorization_pending" until the user finishes
        try:
            message = response.json().get("message", "")
        except ValueError:
            message = response.text
        if message != "authorization_pending":
            raise AuthenticationError(f"Device authorization failed: {message}")

    raise AuthenticationError("Device authorization expired before it was approved")


class TokenStore:
    """Keeps the user token on disk and refreshes it when needed."""

    def __init__(self, path: Path, client_id: str, client_secret: str):
        self.path = Path(path)
        self.client_id = client_id
        self.client_secret = client_secret
        self.token: Optional[UserToken] = None

    def load(self) -> UserToken:
        """Read the stored token.

        Raises:
            AuthenticationError: no token stored or the file is unreadable.
        """
        try:
            data = json.loads(self.path.read_text())
            self.token = UserToken(**data)
        except (OSError, json.JSONDecodeError, TypeError) as e:
            raise AuthenticationError(f"No usable token at {self.path}: {e}") from e
        return self.token

    def save(self, token: UserToken) -> None:
        self.token = token
        temp = self.path.with_suffix(".tmp")
        temp.write_text(json.dumps(asdict(token), indent=2))
        temp.rename(self.path)

    def refresh(self) -> UserToken:
        if self.token is None:
            self.load()
        logger.info("Refreshing Twitch access token")
        token = refresh_token(self.token, self.client_id, self.client_secret)
        self.save(token)
        return token

    def get_valid_token(self) -> UserToken:
        """Return a token that won't expire in the next minute."""
        if self.token is None:
            self.load()
        if self.token.expires_soon():
            return self.refresh()
        return self.token

    def ensure_token(self, **authorize_kwargs) -> UserToken:
        """Load the stored token, falling back to the device authorization flow."""
        try:
            return self.load()
        except AuthenticationError as e:
            logger.info("%s - starting device authorization", e)
        token = device_authorize(self.client_id, **authorize_kwargs)
        self.save(token)
        return token
