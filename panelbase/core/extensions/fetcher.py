"""Manifest and asset retrieval from HTTP(S) URLs or local paths"""

import logging
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urljoin, urlparse
from urllib.request import url2pathname

import requests

from panelbase.core.extensions.exceptions import FetchError

logger = logging.getLogger(__name__)

# Fetch limits
MANIFEST_TIMEOUT = 30  # seconds
ASSET_TIMEOUT = 60  # seconds
MAX_MANIFEST_SIZE = 1024 * 1024  # 1MiB
MAX_ASSET_SIZE = 50 * 1024 * 1024  # 50MB
CHUNK_SIZE = 8192  # 8KB chunks

USER_AGENT = "PanelBase-Extension-Fetcher/1.0"


@dataclass
class FetchResult:
    """Raw bytes of a manifest plus what is needed to resolve its assets"""

    data: bytes
    base_url: Optional[str]
    is_local: bool
    display_name: str


def is_remote(source: str) -> bool:
    parsed = urlparse(source)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def resolve_url(base_url: Optional[str], url: str) -> str:
    """Resolve a possibly relative asset URL against the manifest's base."""
    if base_url is None or urlparse(url).scheme:
        return url
    return urljoin(base_url, url)


def _local_path(source: str) -> Path:
    parsed = urlparse(source)
    if parsed.scheme == "file":
        return Path(url2pathname(parsed.path))
    return Path(source).expanduser()


class SourceFetcher:
    """Fetches manifests and assets.

    Requests are not retried: a transport error, timeout or non-2xx status
    is final for that call.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        manifest_timeout: int = MANIFEST_TIMEOUT,
        asset_timeout: int = ASSET_TIMEOUT,
        max_manifest_size: int = MAX_MANIFEST_SIZE,
        max_asset_size: int = MAX_ASSET_SIZE
    ):
        """
        Initialize fetcher

        Args:
            session: requests session to use (a new one by default)
            manifest_timeout: Timeout for manifest requests in seconds
            asset_timeout: Timeout for asset requests in seconds
            max_manifest_size: Maximum manifest size in bytes
            max_asset_size: Maximum asset size in bytes
        """
        self.session = session or requests.Session()
        self.manifest_timeout = manifest_timeout
        self.asset_timeout = asset_timeout
        self.max_manifest_size = max_manifest_size
        self.max_asset_size = max_asset_size

    def fetch(self, source: str) -> FetchResult:
        """
        Fetch a manifest from a URL or a local path

        Args:
            source: http(s) URL, file:// URL or filesystem path

        Returns:
            FetchResult; ``base_url`` is the manifest URL for remote sources
            and the file:// URL of the manifest's directory for local ones

        Raises:
            FetchError: If the source cannot be read or is too large
        """
        if is_remote(source):
            data = self._get(source, self.manifest_timeout, self.max_manifest_size)
            return FetchResult(data=data, base_url=source, is_local=False, display_name=source)

        path = _local_path(source).absolute()
        if not path.exists():
            raise FetchError(f"local source not found at '{path}'")
        if not path.is_file():
            raise FetchError(f"local source '{path}' is not a file")

        try:
            size = path.stat().st_size
            if size > self.max_manifest_size:
                raise FetchError(
                    f"local source '{path}' too large: {size} bytes "
                    f"(max: {self.max_manifest_size} bytes)"
                )
            data = path.read_bytes()
        except OSError as e:
            raise FetchError(f"failed to read local source '{path}': {e}") from e

        base_url = path.parent.as_uri() + "/"
        return FetchResult(data=data, base_url=base_url, is_local=True, display_name=str(path))

    def _get(self, url: str, timeout: int, max_size: int) -> bytes:
        logger.debug(f"GET {url} (timeout={timeout}s)")
        try:
            response = self.session.get(
                url,
                stream=True,
                timeout=timeout,
                headers={'User-Agent': USER_AGENT}
            )
        except requests.RequestException as e:
            raise FetchError(f"failed to fetch '{url}': {e}") from e

        try:
            if not 200 <= response.status_code < 300:
                raise FetchError(f"failed to fetch '{url}': status {response.status_code}")

            chunks = []
            received = 0
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                if not chunk:
                    continue
                received += len(chunk)
                if received > max_size:
                    raise FetchError(
                        f"response from '{url}' exceeded size limit of {max_size} bytes"
                    )
                chunks.append(chunk)
            return b"".join(chunks)
        except requests.RequestException as e:
            raise FetchError(f"failed to read response from '{url}': {e}") from e
        finally:
            response.close()

    def download(self, url: str, target_path: Path) -> int:
        """
        Download an asset to ``target_path``

        Args:
            url: Absolute http(s) or file:// URL
            target_path: Destination file, already confined to its sandbox

        Returns:
            Number of bytes written

        Raises:
            FetchError: If the asset cannot be retrieved or written
        """
        parsed = urlparse(url)
        target_path.parent.mkdir(parents=True, exist_ok=True)

        if parsed.scheme == "file":
            source_path = _local_path(url)
            if not source_path.is_file():
                raise FetchError(f"local asset not found at '{source_path}'")
            try:
                shutil.copyfile(source_path, target_path)
                return target_path.stat().st_size
            except OSError as e:
                raise FetchError(f"failed to copy '{source_path}' to '{target_path}': {e}") from e

        if parsed.scheme not in ("http", "https"):
            raise FetchError(f"unsupported URL scheme '{parsed.scheme}' for asset '{url}'")

        # Use temporary file during download
        temp_path = target_path.with_name(target_path.name + '.tmp')
        start_time = time.time()
        try:
            data = self._get(url, self.asset_timeout, self.max_asset_size)
            with open(temp_path, 'wb') as f:
                f.write(data)
            temp_path.replace(target_path)
        except OSError as e:
            raise FetchError(f"failed to write '{target_path}': {e}") from e
        finally:
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError as e:
                    logger.warning(f"Failed to clean up temporary file {temp_path}: {e}")

        elapsed_time = time.time() - start_time
        logger.debug(f"Downloaded {len(data) / 1024:.2f}KB from {url} in {elapsed_time:.2f}s")
        return len(data)

    def close(self):
        """Close the session"""
        self.session.close()

    def __enter__(self):
        """Context manager entry"""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit"""
        self.close()
