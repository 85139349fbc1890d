"""Session client for the 3x-ui (X-UI) panel API.

The panel authenticates with an HTTP cookie issued by ``POST login`` and
wraps every response in a ``{success, msg, obj}`` envelope. A single
:class:`XUIClient` instance is shared by every chat user, so the cached
session is refreshed under a lock and a burst of authorization failures
results in one re-login only.

TLS verification is disabled by default because panels are usually
deployed with self-signed certificates.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import quote, urljoin

import requests
import urllib3
from requests.exceptions import ConnectionError, SSLError, Timeout
from urllib3.exceptions import InsecureRequestWarning

from .inbounds import InboundClient, iter_clients, parse_inbounds
from .naming import matches_identifier

SUCCESS_STATUSES = {"success", True}

LOGGER = logging.getLogger(__name__)

# Retry configuration
MAX_RETRIES = 3
RETRY_WAIT = 5.0  # seconds, grows linearly per attempt
RETRY_MAX_WAIT = 20.0
DEFAULT_TIMEOUT = 30

# The panel does not report cookie lifetime; re-login before it is likely stale.
SESSION_TTL = 30 * 60

AUTH_FAILURE_STATUSES = (401, 403)
TRANSIENT_ERRORS = (ConnectionError, Timeout)

DEFAULT_API_PREFIX = "panel/api/inbounds"


class XUIError(RuntimeError):
    """Raised when the panel returns an unexpected error."""


class XUIAuthenticationError(XUIError):
    """Raised when the panel rejects the credentials or the session."""


class XUIConnectionError(XUIError):
    """Raised when a connection to the panel fails."""


class XUIRemoteError(XUIError):
    """Raised when the panel answers with ``success: false``."""

    def __init__(self, msg: str) -> None:
        super().__init__(msg)
        self.msg = msg


class ClientNotFoundError(XUIError):
    """Raised when no client matches the requested identifier."""


def retry_wait(attempt: int) -> float:
    """Backoff before retry number ``attempt + 1``."""

    return min(RETRY_WAIT * (attempt + 1), RETRY_MAX_WAIT)


class XUIClient:
    """Cookie-authenticated wrapper around the panel's JSON API.

    - Both JSON and form data login methods (tries both for compatibility)
    - One cached session shared by all callers, refreshed under a lock
    - Single transparent re-login on 401/403
    - Bounded retries with helpful hints for network failures
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        *,
        api_prefix: str = DEFAULT_API_PREFIX,
        sub_url_prefix: str = "",
        verify_ssl: bool = False,
        timeout: int = DEFAULT_TIMEOUT,
        session_ttl: float = SESSION_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.base_url = base_url.rstrip("/") + "/"
        self._url_ends_with_login = self._check_url_ends_with_login(base_url)
        self._api_base_url = self._compute_api_base_url(self.base_url, self._url_ends_with_login)
        self._login_url = urljoin(self._api_base_url, "login")
        self.api_prefix = api_prefix.strip("/")
        self.sub_url_prefix = sub_url_prefix
        self.username = username
        self.password = password
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.session_ttl = session_ttl
        self._clock = clock
        self.session = requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        self._lock = threading.Lock()
        self._session_expires_at: Optional[float] = None
        self._generation = 0
        if not verify_ssl:
            urllib3.disable_warnings(InsecureRequestWarning)

    @staticmethod
    def _check_url_ends_with_login(url: str) -> bool:
        """Check if URL ends with /login (case-insensitive)."""
        return url.rstrip("/").lower().endswith("/login")

    @staticmethod
    def _compute_api_base_url(base_url: str, url_ends_with_login: bool) -> str:
        """Strip a trailing ``/login`` so API paths resolve next to it."""
        if url_ends_with_login:
            url = base_url.rstrip("/")
            if url.lower().endswith("/login"):
                url = url[: -len("/login")]
            return url.rstrip("/") + "/"
        return base_url

    def _build_url(self, path: str) -> str:
        """Return an absolute panel URL while preserving nested paths."""

        return urljoin(self._api_base_url, path)

    def _endpoint(self, *parts: Any) -> str:
        return "/".join([self.api_prefix, *(quote(str(part), safe="") for part in parts)])

    @staticmethod
    def _is_ssl_error(exc: Exception) -> bool:
        """Check if the exception is an SSL/TLS related error."""
        if isinstance(exc, SSLError):
            return True
        error_str = str(exc)
        return "SSL" in error_str or "ssl" in error_str

    def _handle_connection_error(self, exc: Exception) -> None:
        """Convert connection errors to user-friendly XUIConnectionError."""
        error_str = str(exc)
        base_msg = f"Failed to connect to panel at {self.base_url}"

        if self._is_ssl_error(exc):
            hint = (
                "This usually means the panel URL uses https:// but the server "
                "expects http://, or the server has SSL/TLS misconfiguration. "
                "Try changing the server URL from https:// to http://"
            )
            raise XUIConnectionError(f"{base_msg}: SSL/TLS error. {hint}") from exc

        if "Connection refused" in error_str:
            hint = "Make sure the panel is running and the port is correct."
            raise XUIConnectionError(f"{base_msg}: Connection refused. {hint}") from exc

        if isinstance(exc, Timeout) or "timed out" in error_str.lower() or "timeout" in error_str.lower():
            hint = "The server took too long to respond. Check network connectivity."
            raise XUIConnectionError(f"{base_msg}: Connection timed out. {hint}") from exc

        raise XUIConnectionError(f"{base_msg}: {exc}") from exc

    def _log_retry(self, what: str, attempt: int, exc: Exception) -> None:
        hint = ""
        if self._is_ssl_error(exc) and attempt == MAX_RETRIES - 1:
            hint = " Hint: Try changing the server URL from https:// to http://"
        LOGGER.warning(
            "%s attempt %d/%d failed: %s%s",
            what,
            attempt + 1,
            MAX_RETRIES,
            exc,
            hint,
        )

    # ------------------------------------------------------------------
    # Session handling
    # ------------------------------------------------------------------
    def _session_valid(self) -> bool:
        return self._session_expires_at is not None and self._clock() < self._session_expires_at

    def _try_login_request(self, use_json: bool = True) -> Optional[Dict[str, Any]]:
        """Attempt a single login request.

        Args:
            use_json: If True, send credentials as JSON. If False, send as form data.

        Returns:
            Response data dict if the panel answered with JSON, None otherwise.
        """
        credentials = {"username": self.username, "password": self.password}
        response: Optional[requests.Response] = None
        try:
            if use_json:
                response = self.session.post(
                    self._login_url,
                    json=credentials,
                    timeout=self.timeout,
                    verify=self.verify_ssl,
                )
            else:
                # Some 3x-ui versions expect form data instead of JSON
                response = self.session.post(
                    self._login_url,
                    data=credentials,
                    timeout=self.timeout,
                    verify=self.verify_ssl,
                )
            response.raise_for_status()
            data = response.json()
        except json.JSONDecodeError as exc:
            response_text = response.text[:200] if response is not None else "No response"
            LOGGER.warning(
                "Failed to decode JSON response from login: %s. Response: %s",
                exc,
                response_text,
            )
            return None
        except TRANSIENT_ERRORS:
            raise
        except requests.exceptions.RequestException as exc:
            LOGGER.warning("Login request failed: %s", exc)
            return None
        return data if isinstance(data, dict) else None

    def _validate_login_response(self, data: Optional[Dict[str, Any]]) -> bool:
        """Accept a login only when the panel reports success *and* set a cookie."""

        if not data:
            return False
        api_success = data.get("status") in SUCCESS_STATUSES or data.get("success") in SUCCESS_STATUSES
        if not api_success:
            return False
        if not self.session.cookies:
            LOGGER.warning("Login API returned success but no session cookie was set")
            return False
        cookie_names = "; ".join(c.name for c in self.session.cookies)
        LOGGER.debug("Login successful. Session cookies set: %s", cookie_names)
        return True

    def _login(self) -> None:
        """Authenticate and populate the session cookies.

        Tries both JSON and form data login methods for better compatibility
        with different 3x-ui panel versions. Must be called with the lock held.
        """
        last_exc: Optional[Exception] = None

        for attempt in range(MAX_RETRIES):
            self.session.cookies.clear()
            try:
                data = self._try_login_request(use_json=True)
                if self._validate_login_response(data):
                    self._session_established("JSON")
                    return

                LOGGER.debug("JSON login failed or incomplete, trying form data")
                data = self._try_login_request(use_json=False)
                if self._validate_login_response(data):
                    self._session_established("form data")
                    return

                message = (data or {}).get("msg") or "no session cookie returned"
                raise XUIAuthenticationError(f"Login failed: {message}")

            except TRANSIENT_ERRORS as exc:
                last_exc = exc
                self._log_retry("connection", attempt, exc)
                if attempt < MAX_RETRIES - 1:
                    time.sleep(retry_wait(attempt))
                continue

        if last_exc is not None:
            self._handle_connection_error(last_exc)

    def _session_established(self, method: str) -> None:
        self._session_expires_at = self._clock() + self.session_ttl
        self._generation += 1
        LOGGER.info("Successfully logged in to panel using %s", method)

    def ensure_session(self) -> int:
        """Log in unless a non-expired session is cached.

        Returns
        -------
        int
            Generation number of the session now in use. It increases with
            every successful login.
        """
        with self._lock:
            if not self._session_valid():
                self._login()
            return self._generation

    def _invalidate_session(self, generation: int) -> None:
        with self._lock:
            # Another caller may already have logged in again.
            if self._generation == generation:
                self._session_expires_at = None

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------
    def _send(self, method: str, path: str, body: Optional[Dict[str, Any]]) -> requests.Response:
        url = self._build_url(path)

        for attempt in range(MAX_RETRIES):
            try:
                return self.session.request(
                    method,
                    url,
                    json=body,
                    timeout=self.timeout,
                    verify=self.verify_ssl,
                )
            except TRANSIENT_ERRORS as exc:
                self._log_retry("request", attempt, exc)
                if attempt == MAX_RETRIES - 1:
                    self._handle_connection_error(exc)
                time.sleep(retry_wait(attempt))
            except requests.exceptions.RequestException as exc:
                LOGGER.error("Request to %s failed: %s", path, exc)
                raise XUIConnectionError(f"Request to panel at {self.base_url} failed: {exc}") from exc

        raise XUIConnectionError(f"Failed to connect to panel at {self.base_url}")  # pragma: no cover

    @staticmethod
    def _parse_envelope(response: requests.Response, path: str) -> Dict[str, Any]:
        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as exc:
            raise XUIRemoteError(f"HTTP {response.status_code} from {path}") from exc

        if not response.text:
            LOGGER.debug("Empty response from %s", path)
            return {"success": True}

        try:
            payload = response.json()
        except json.JSONDecodeError as exc:
            response_preview = response.text[:200]
            LOGGER.error(
                "Failed to decode JSON from %s: %s. Response preview: %s",
                path,
                exc,
                response_preview,
            )
            raise XUIError(f"Invalid JSON response from panel: {response_preview}") from exc

        if not isinstance(payload, dict):
            raise XUIError(f"Unexpected response from panel: {payload!r}")
        if payload.get("status") not in SUCCESS_STATUSES and payload.get("success") not in SUCCESS_STATUSES:
            raise XUIRemoteError(str(payload.get("msg") or f"API call to {path} failed"))
        return payload

    def call(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Perform one authenticated request and return the response envelope.

        Parameters
        ----------
        method:
            HTTP method (``GET``, ``POST``...).
        path:
            API path relative to the panel base URL.
        body:
            Optional JSON payload.

        Raises
        ------
        XUIAuthenticationError
            Login was rejected, or the panel refused the request twice in a row.
        XUIConnectionError
            The panel could not be reached after :data:`MAX_RETRIES` attempts.
        XUIRemoteError
            The panel answered with ``success: false``.
        """
        return self._call(method, path, body, retry=True)

    def _call(
        self,
        method: str,
        path: str,
        body: Optional[Dict[str, Any]],
        *,
        retry: bool,
    ) -> Dict[str, Any]:
        generation = self.ensure_session()
        response = self._send(method, path, body)

        # Some panels return 403 instead of 401 for session expiry
        if response.status_code in AUTH_FAILURE_STATUSES:
            if not retry:
                raise XUIAuthenticationError(
                    f"Panel rejected the session for {path} (status {response.status_code})"
                )
            LOGGER.info(
                "Session expired (status %d), re-authenticating",
                response.status_code,
            )
            self._invalidate_session(generation)
            return self._call(method, path, body, retry=False)

        return self._parse_envelope(response, path)

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------
    def list_inbounds(self) -> List[Dict[str, Any]]:
        """Return the raw inbound list (``obj`` of ``GET {prefix}/list``)."""

        response = self.call("GET", self._endpoint("list"))
        inbounds = response.get("obj", [])
        if isinstance(inbounds, list):
            return inbounds
        return []

    def add_client(self, inbound_id: int, client: InboundClient) -> Dict[str, Any]:
        """Add ``client`` to one inbound using the ``addClient`` endpoint."""

        payload = {
            "id": int(inbound_id),
            "settings": json.dumps({"clients": [client.to_dict()]}),
        }
        return self.call("POST", self._endpoint("addClient"), payload)

    def delete_client(self, inbound_id: int, client_uuid: str) -> Dict[str, Any]:
        """Remove one client from one inbound by its uuid."""

        return self.call("POST", self._endpoint(int(inbound_id), "delClient", client_uuid))

    def remove_clients(self, identifiers: List[str]) -> Tuple[List[str], List[str]]:
        """Delete every client matching one of ``identifiers`` on every inbound.

        An identifier matches its exact email and all of its ``-{n}``
        numbered copies.

        Returns
        -------
        tuple
            ``(deleted_emails, warnings)``; warnings describe per-record
            failures when at least one record was removed.

        Raises
        ------
        ClientNotFoundError
            No inbound holds a matching client.
        XUIRemoteError
            Matching clients were found but none could be deleted.
        """
        inbounds = parse_inbounds(self.list_inbounds())
        targets = [
            (inbound, client)
            for inbound, client in iter_clients(inbounds)
            if any(matches_identifier(client.email, identifier) for identifier in identifiers)
        ]
        if not targets:
            raise ClientNotFoundError(f"Client {', '.join(identifiers)} not found")

        deleted: List[str] = []
        warnings: List[str] = []
        for inbound, client in targets:
            try:
                self.delete_client(inbound.id, client.uuid)
            except XUIError as exc:
                LOGGER.warning("failed to delete %s from inbound %s: %s", client.email, inbound.id, exc)
                warnings.append(f"Inbound {inbound.id}: {client.email}: {exc}")
                continue
            deleted.append(client.email)

        if not deleted:
            raise XUIRemoteError("Failed to delete any client:\n" + "\n".join(warnings))
        LOGGER.info("deleted %d client record(s) for %s", len(deleted), ", ".join(identifiers))
        return deleted, warnings

    def reset_client_traffic(self, inbound_id: int, email: str) -> Dict[str, Any]:
        return self.call("POST", self._endpoint(int(inbound_id), "resetClientTraffic", email))

    def get_online_clients(self) -> List[str]:
        """Return the emails of clients currently connected."""

        response = self.call("POST", self._endpoint("onlines"))
        online = response.get("obj") or []
        if not isinstance(online, list):
            return []
        return [str(email) for email in online]

    def subscription_url(self, sub_id: str) -> str:
        return f"{self.sub_url_prefix}{sub_id}?name={sub_id}"

    def check_connection(self) -> bool:
        """Verify connection to the panel is working.

        Attempts to login and returns True if successful, False otherwise.
        """
        try:
            self.ensure_session()
        except XUIError as exc:
            LOGGER.warning("panel connection check failed: %s", exc)
            return False
        return True
