from __future__ import annotations

import logging
import os
import re
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional
from urllib.parse import urlsplit

import httpx


logger = logging.getLogger(__name__)

DEFAULT_ICON_SERVICE = "https://icons.bitwarden.net"

_HOST_RE = re.compile(r"^[a-z0-9.-]+$")


class FaviconError(RuntimeError):
    """Base error for favicon downloads."""


class FaviconNotFoundError(FaviconError):
    """The icon service has no icon for the host."""


def host_for(uri: str) -> Optional[str]:
    """Hostname of a login URI, or None for non-web URIs (androidapp://, etc.)."""
    uri = (uri or "").strip()
    if not uri:
        return None
    if "://" not in uri:
        uri = f"https://{uri}"
    parts = urlsplit(uri)
    if parts.scheme not in ("http", "https"):
        return None
    host = (parts.hostname or "").lower()
    if not host or not _HOST_RE.match(host):
        return None
    return host


class FaviconClient:
    """
    Downloads favicons from the Bitwarden icon service.

    - Network errors and 5xx/429 responses are retried with exponential backoff.
    - 404 means the service has no icon for that host; it is not retried.
    """

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_ICON_SERVICE,
        timeout: float = 10.0,
        max_attempts: int = 3,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)
        self._max_attempts = max_attempts
        self._sleep = sleep

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "FaviconClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def fetch(self, host: str) -> bytes:
        url = f"{self._base_url}/{host}/icon.png"
        attempt = 0
        backoff = 0.5
        last_exc: Optional[Exception] = None
        while attempt < self._max_attempts:
            try:
                resp = self._client.get(url)
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                last_exc = exc
            else:
                if resp.status_code == 200 and resp.content:
                    return resp.content
                if resp.status_code == 404:
                    raise FaviconNotFoundError(f"No icon for {host}")
                if resp.status_code in (429, 500, 502, 503, 504):
                    last_exc = FaviconError(f"HTTP {resp.status_code} for {host}")
                else:
                    raise FaviconError(f"HTTP {resp.status_code} for {host}")

            attempt += 1
            if attempt < self._max_attempts:
                self._sleep(backoff)
                backoff = min(backoff * 2, 4.0)

        raise FaviconError(f"Failed to fetch icon for {host} after retries") from last_exc


class IconCache:
    """Favicon files, one `<host>.png` per host, in the workflow data dir."""

    def __init__(self, directory: os.PathLike[str] | str) -> None:
        self._dir = Path(directory)

    def path(self, host: str) -> Path:
        return self._dir / f"{host}.png"

    def has(self, host: str) -> bool:
        return self.path(host).is_file()

    def icon_for(self, uris: Iterable[str]) -> Optional[Path]:
        """Cached icon of the first web URI, if any."""
        for uri in uris:
            host = host_for(uri)
            if host and self.has(host):
                return self.path(host)
        return None

    def clear(self) -> int:
        removed = 0
        if self._dir.is_dir():
            for icon in self._dir.glob("*.png"):
                icon.unlink()
                removed += 1
        return removed

    def missing_hosts(self, uris: Iterable[str]) -> List[str]:
        seen: Dict[str, None] = {}
        for uri in uris:
            host = host_for(uri)
            if host and host not in seen and not self.has(host):
                seen[host] = None
        return list(seen)

    def download(self, client: FaviconClient, hosts: Iterable[str]) -> Dict[str, bool]:
        """Fetch each host's icon; failures are logged and skipped. Returns host -> ok."""
        self._dir.mkdir(parents=True, exist_ok=True)
        out: Dict[str, bool] = {}
        for host in hosts:
            try:
                data = client.fetch(host)
            except FaviconNotFoundError:
                logger.debug("No favicon for %s", host)
                out[host] = False
                continue
            except FaviconError as exc:
                logger.warning("Favicon download failed for %s: %s", host, exc)
                out[host] = False
                continue
            self.path(host).write_bytes(data)
            out[host] = True
        return out
