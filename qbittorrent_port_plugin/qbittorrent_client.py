"""
qBittorrent WebUI API client with transparent re-authentication.

Provides the QBittorrentClient class, which owns a requests.Session holding
the SID cookie issued by qBittorrent on login. Every authenticated call is
sent with the current cookie first; when qBittorrent answers 401/403 the
client logs in once and retries the call once. A second rejection raises
UnauthorizedError instead of retrying forever with bad credentials.

Only the preferences endpoints are wrapped, and writes are partial: the
setPreferences payload holds just the fields being changed so that the rest
of the server settings are left alone.

https://github.com/qbittorrent/qBittorrent/wiki/WebUI-API-(qBittorrent-4.1)
"""

import json
from typing import Any, Dict, Optional
from urllib.parse import urljoin, urlparse

import requests

from .config import QBITTORRENT_USERNAME
from .exceptions import (
    ConfigError,
    NotAuthorizedError,
    ProtocolError,
    TransportError,
    UnauthorizedError,
)
from .logger import logger


LOGIN_ENDPOINT = "/api/v2/auth/login"
PREFERENCES_ENDPOINT = "/api/v2/app/preferences"
SET_PREFERENCES_ENDPOINT = "/api/v2/app/setPreferences"

UNAUTHORIZED_STATUS_CODES = (401, 403)

# qBittorrent answers a bad login with 200 and this body
LOGIN_FAILED_BODY = "Fails."

# Logins allowed per authenticated call
REAUTH_ATTEMPTS = 1

MAX_PORT = 65535
MAX_BODY_IN_ERROR = 200


def is_valid_port(port: Any) -> bool:
    return isinstance(port, int) and not isinstance(port, bool) and 0 <= port <= MAX_PORT


class QBittorrentClient:
    def __init__(
        self,
        base_url: str,
        username: str = QBITTORRENT_USERNAME,
        password: str = "",
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        parsed = urlparse(base_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigError(f"qBittorrent API location must be an http(s) URL, got '{base_url}'")

        self.base_url = base_url.rstrip('/')
        self.username = username
        self.password = password
        self.timeout = timeout
        self.session = session or requests.Session()
        # qBittorrent's CSRF protection wants a Referer matching its own host
        self.session.headers.update({"Referer": self.base_url})

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def close(self) -> None:
        self.session.close()

    def _send(self, method: str, endpoint: str, **kwargs) -> requests.Response:
        url = urljoin(self.base_url + "/", endpoint.lstrip('/'))
        try:
            return self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

    def _check(self, response: requests.Response, action: str) -> None:
        if response.status_code != 200:
            body = response.text[:MAX_BODY_IN_ERROR]
            raise ProtocolError(
                f"failed to {action}: status code={response.status_code}, body='{body}'",
                status_code=response.status_code,
                body=body,
            )

    def _authenticated(self, method: str, endpoint: str, **kwargs) -> requests.Response:
        """
        Send a request that needs a session, logging in again at most once.

        Raises:
            UnauthorizedError: If the request is rejected after re-authenticating
            NotAuthorizedError: If the re-login itself is rejected
        """
        for attempt in range(1 + REAUTH_ATTEMPTS):
            if attempt:
                logger.info(f"qBittorrent session not authorized for {endpoint}, logging in again")
                self.login()

            response = self._send(method, endpoint, **kwargs)
            if response.status_code not in UNAUTHORIZED_STATUS_CODES:
                return response

        raise UnauthorizedError(
            f"{method} {endpoint} still not authorized after logging in again "
            f"(status code={response.status_code})"
        )

    def login(self) -> None:
        """
        Authenticate with the API. The SID cookie is kept in the session.

        Raises:
            NotAuthorizedError: If the credentials were not accepted
            ProtocolError: On any other non-success answer
            TransportError: If qBittorrent could not be reached
        """
        response = self._send("POST", LOGIN_ENDPOINT, data={
            "username": self.username,
            "password": self.password,
        })

        rejected = response.status_code == 200 and response.text.strip() == LOGIN_FAILED_BODY
        if response.status_code in UNAUTHORIZED_STATUS_CODES or rejected:
            raise NotAuthorizedError(
                f"qBittorrent rejected credentials for user '{self.username}': "
                f"status code={response.status_code}, body='{response.text[:MAX_BODY_IN_ERROR]}'"
            )

        self._check(response, "login")
        logger.debug(f"Logged in to qBittorrent at {self.base_url} as '{self.username}'")

    def get_preferences(self) -> Dict[str, Any]:
        """Return the full preferences object of the server."""
        response = self._authenticated("GET", PREFERENCES_ENDPOINT)
        self._check(response, "get server preferences")

        try:
            prefs = response.json()
        except ValueError as e:
            raise ProtocolError(
                f"failed to decode server preferences as JSON: {e}",
                status_code=response.status_code,
                body=response.text[:MAX_BODY_IN_ERROR],
            ) from e

        if not isinstance(prefs, dict):
            raise ProtocolError(
                f"server preferences are not a JSON object: {type(prefs).__name__}",
                status_code=response.status_code,
            )

        return prefs

    def set_preferences(self, prefs: Dict[str, Any]) -> None:
        """
        Update only the given preferences, leaving every other setting untouched.

        Args:
            prefs: The fields to change, e.g. {"listen_port": 51413}
        """
        if not prefs:
            raise ValueError("no preferences given to set")

        payload = json.dumps(prefs, separators=(",", ":"))
        response = self._authenticated("POST", SET_PREFERENCES_ENDPOINT, data={"json": payload})
        self._check(response, "set server preferences")

    def get_listening_port(self) -> int:
        prefs = self.get_preferences()
        port = prefs.get("listen_port")
        if not is_valid_port(port):
            raise ProtocolError(f"server preferences hold no valid listen_port: {port!r}")
        return port

    def set_listening_port(self, port: int) -> None:
        if not is_valid_port(port):
            raise ValueError(f"listening port must be an integer in [0, {MAX_PORT}], got {port!r}")
        self.set_preferences({"listen_port": port})
