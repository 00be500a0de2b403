"""API client for the SKB backup server."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import httpx

from .auth import Authenticator, SignedEnvelope
from .config import Config
from .exceptions import (
    SkbAPIError,
    SkbAuthenticationError,
    SkbConflictError,
    SkbInvalidResponseError,
    SkbNetworkError,
    SkbNotFoundError,
    SkbPermissionError,
)
from .models import BackupCode, DiscoveredServer, InfoSnapshot
from .utils import format_http_date, get_local_mtime, now_timestamp, parse_http_date

logger = logging.getLogger(__name__)


class SkbClient:
    """Client for the SKB client REST API.

    Every request is signed independently; there is no session state.
    Requests are never retried automatically.
    """

    def __init__(
        self,
        config: Config,
        authenticator: Authenticator | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize SKB API client.

        Args:
            config: Loaded configuration (API URL and private key)
            authenticator: Optional authenticator (built from config if omitted)
            transport: Optional httpx transport (used by tests)
        """
        self.config = config
        self.api_url = config.api_url
        self.authenticator = authenticator or Authenticator(config.private_key)
        self._transport = transport
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                timeout=httpx.Timeout(self.config.timeout),
                verify=not self.config.allow_unsafe,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def __enter__(self) -> SkbClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _url(self, endpoint: str) -> str:
        return f"{self.api_url.rstrip('/')}/{endpoint.lstrip('/')}"

    def _handle_http_error(self, e: httpx.HTTPStatusError) -> SkbAPIError:
        """Map an HTTP error response to an SKB exception."""
        status_code = e.response.status_code

        if status_code == 401:
            return SkbAuthenticationError(
                "Client signature verification failed - check your private key"
            )
        elif status_code == 403:
            return SkbPermissionError("Access forbidden - check your permissions")
        elif status_code == 404:
            return SkbNotFoundError("Resource not found")
        elif status_code == 409:
            return SkbConflictError("Resource already exists on server")

        error_msg = f"API request failed with status {status_code}"
        try:
            if e.response.content:
                error_data = e.response.json()
                if isinstance(error_data, dict):
                    msg = (
                        error_data.get("message")
                        or error_data.get("error")
                        or error_data.get("details")
                    )
                    if msg:
                        error_msg = f"{error_msg}: {msg}"
        except ValueError:
            # Body is not JSON, fall back to the plain text if short
            text = e.response.text.strip()
            if text and len(text) < 200:
                error_msg = f"{error_msg}: {text}"
        return SkbAPIError(error_msg)

    def _request(
        self,
        method: str,
        endpoint: str,
        envelope: SignedEnvelope,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send a signed request.

        Args:
            method: HTTP method
            endpoint: API endpoint path relative to the API URL
            envelope: Signed body; sent byte for byte
            params: Optional query parameters
            headers: Additional headers

        Returns:
            The successful response

        Raises:
            SkbAPIError: If the request fails
        """
        url = self._url(endpoint)
        request_headers = dict(headers or {})
        request_headers.update(envelope.headers)

        try:
            response = self._get_client().request(
                method,
                url,
                content=envelope.body,
                params=params,
                headers=request_headers,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise self._handle_http_error(e) from e
        except httpx.RequestError as e:
            raise SkbNetworkError(f"Network error: {e}") from e
        return response

    def _request_json(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Send a signed request and decode a JSON response."""
        response = self._request(method, endpoint, **kwargs)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise SkbInvalidResponseError(
                f"Invalid JSON response from {method} {endpoint}"
            ) from e

    # =========================
    # Info
    # =========================

    def get_info(self) -> InfoSnapshot:
        """Fetch the remote state snapshot (``GET info/``)."""
        logger.info('Calling "GET /info"')
        response = self._request(
            "GET", "info/", envelope=self.authenticator.build_envelope()
        )
        if not response.content:
            raise SkbInvalidResponseError("Empty response from GET info/")
        try:
            data = response.json()
        except ValueError as e:
            raise SkbInvalidResponseError("Invalid JSON response from GET info/") from e
        return InfoSnapshot.from_api_response(data)

    # =========================
    # File Operations
    # =========================

    def create_file(self, path: str) -> str:
        """Register a new file path on the server.

        Args:
            path: Local path exactly as it will be matched later

        Returns:
            The id assigned by the server
        """
        logger.info('Calling "POST /file" for file %s', path)
        data = self._request_json(
            "POST",
            "file/",
            envelope=self.authenticator.build_envelope({"path": path}),
            headers={"Content-Type": "application/json"},
        )
        file_id = data.get("id") if isinstance(data, dict) else None
        if not file_id:
            raise SkbInvalidResponseError(f"Server returned no id for file {path}")
        return str(file_id)

    def _send_content(self, method: str, file_id: str, file_path: Path) -> int:
        data = file_path.read_bytes()
        try:
            last_modified = get_local_mtime(file_path)
        except OSError:
            last_modified = now_timestamp()

        logger.info('Calling "%s /file/%s" for file %s', method, file_id, file_path)
        self._request(
            method,
            f"file/{file_id}/",
            envelope=self.authenticator.sign_payload(data),
            headers={
                "Last-Modified": format_http_date(last_modified),
                "Content-Type": "application/octet-stream",
            },
        )
        return last_modified

    def upload_new_file(self, file_id: str, file_path: Path) -> int:
        """Upload the content of a freshly created file (``POST file/{id}/``).

        Returns:
            The modification time sent to the server
        """
        return self._send_content("POST", file_id, file_path)

    def update_file(self, file_id: str, file_path: Path) -> int:
        """Replace the content of a tracked file (``PUT file/{id}/``).

        Returns:
            The modification time sent to the server
        """
        return self._send_content("PUT", file_id, file_path)

    def download_file(self, file_id: str) -> tuple[bytes, int | None]:
        """Get the server version of a file (``GET file/{id}/``).

        Returns:
            Tuple of (content, last modified timestamp from the response or None)
        """
        logger.info('Calling "GET /file/%s"', file_id)
        response = self._request(
            "GET", f"file/{file_id}/", envelope=self.authenticator.build_envelope()
        )
        return response.content, parse_http_date(response.headers.get("Last-Modified"))

    def delete_file(self, file_id: str) -> None:
        """Delete a file on the server. The local file is not touched."""
        logger.info('Calling "DELETE /file/%s"', file_id)
        self._request(
            "DELETE", f"file/{file_id}/", envelope=self.authenticator.build_envelope()
        )

    # =========================
    # Server Operations
    # =========================

    def get_servers(self, depth: int | None = None) -> list[DiscoveredServer]:
        """Discover servers that are not connected yet (``GET server/``)."""
        params = {"depth": depth} if depth is not None else None
        if depth is not None:
            logger.info('Calling "GET /server" with a depth of %d', depth)
        else:
            logger.info('Calling "GET /server"')
        data = self._request_json(
            "GET",
            "server/",
            envelope=self.authenticator.build_envelope(),
            params=params,
        )
        servers = data.get("servers") if isinstance(data, dict) else None
        return [DiscoveredServer.from_api_response(s) for s in servers or []]

    def _server_call(self, method: str, hostname: str) -> Any:
        logger.info('Calling "%s /server/" for server %s', method, hostname)
        return self._request_json(
            method,
            "server/",
            envelope=self.authenticator.build_envelope(),
            params={"hostname": hostname},
        )

    def add_server(self, hostname: str) -> BackupCode:
        """Add a new remote server; it must verify us before it is usable."""
        return BackupCode.from_api_response(self._server_call("POST", hostname))

    def accept_server(self, hostname: str) -> BackupCode:
        """Accept a remote server that is trying to connect to us."""
        return BackupCode.from_api_response(self._server_call("PUT", hostname))

    def delete_server(self, hostname: str) -> None:
        """Delete a known server, including blocks saved on it."""
        self._server_call("DELETE", hostname)
