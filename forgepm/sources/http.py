"""
HTTP Source.

Registry served from a plain web server laid out as::

    <base_url>/modules.json
    <base_url>/modules/<module-path>/<version>.zip
"""

from typing import Any, BinaryIO

import httpx

from forgepm.sources.base import INDEX_FILE, Source, SourceError


class HttpSource(Source):
    """Registry over HTTP(S) with optional basic authentication."""

    type = "http"
    transport_errors = (httpx.HTTPError,)

    def __init__(self, config: dict[str, Any], client: httpx.Client | None = None):
        super().__init__(config)
        self.base_url: str = config.get("base_url", "").rstrip("/")
        username = config.get("username")
        password = config.get("password")
        auth = httpx.BasicAuth(username, password) if username and password else None
        timeout = float(config.get("timeout", 30))

        if client is None:
            self.client = httpx.Client(
                auth=auth, timeout=timeout, follow_redirects=True, max_redirects=5
            )
            self._owns_client = True
        else:
            self.client = client
            if auth is not None:
                self.client.auth = auth
            self._owns_client = False

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def locate(self, relative: str) -> str:
        return f"{self.base_url}/{relative.lstrip('/')}"

    def read_bytes(self, relative: str) -> bytes:
        response = self.client.get(self.locate(relative))
        if not response.is_success:
            raise SourceError(f"HTTP {response.status_code} for {response.url}")
        return response.content

    def copy_to(self, relative: str, f: BinaryIO) -> None:
        with self.client.stream("GET", self.locate(relative)) as response:
            if not response.is_success:
                raise SourceError(f"HTTP {response.status_code} for {response.url}")
            for chunk in response.iter_bytes():
                f.write(chunk)

    def validate_connection(self) -> bool:
        try:
            response = self.client.head(self.locate(INDEX_FILE))
        except httpx.HTTPError:
            return False
        return 200 <= response.status_code < 400
