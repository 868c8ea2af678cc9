"""
Network download for prebuilt sharp archives.

This module fetches a single URL to a local file with:
- HTTP/HTTPS downloads with TLS verification
- Explicit redirect following (absolute and relative Location headers)
  with a bounded number of hops
- Streaming of the response body straight to disk
- Removal of the partial file on any failure
- Optional progress reporting

There is no retry: a failed request fails the current install attempt.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import urljoin

import requests
from requests.exceptions import RequestException

from sharpkit.core.exceptions import DownloadError, TooManyRedirectsError

logger = logging.getLogger(__name__)

REDIRECT_STATUSES = (301, 302, 303, 307, 308)
DEFAULT_MAX_REDIRECTS = 10
CHUNK_SIZE = 8192


@dataclass
class DownloadProgress:
    """Progress information for a download."""

    bytes_downloaded: int
    total_bytes: int
    percentage: float
    speed_bps: float  # bytes per second

    def __str__(self) -> str:
        """Format progress for display."""
        return format_progress(self)


def download_file(
    url: str,
    destination: Path,
    timeout: float = 60,
    max_redirects: int = DEFAULT_MAX_REDIRECTS,
    progress_callback: Optional[Callable[[DownloadProgress], None]] = None,
    session: Optional[requests.Session] = None,
) -> Path:
    """
    Download file from URL to destination, following redirects.

    Args:
        url: URL to download from
        destination: Local path to save file
        timeout: Request timeout in seconds
        max_redirects: Maximum number of redirect hops to follow
        progress_callback: Optional callback for progress updates
        session: Optional requests session (default: module-level requests)

    Returns:
        Path to downloaded file

    Raises:
        DownloadError: If the request fails, ends in a non-success status, or
            the body cannot be written to destination
        TooManyRedirectsError: If more than max_redirects hops are seen
        ValueError: If URL or destination is invalid

    Example:
        >>> url = "https://registry.npmmirror.com/-/binary/sharp/v0.33.5/x.tar.gz"
        >>> download_file(url, Path("tmp/x/x.tar.gz"), timeout=60)
    """
    if not url:
        raise ValueError("URL cannot be empty")

    if not destination:
        raise ValueError("Destination path cannot be empty")

    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)

    http = session or requests
    response = _follow_redirects(http, url, timeout, max_redirects)

    try:
        _stream_to_file(response, destination, progress_callback)
    except Exception as e:
        logger.error(f"Error during download: {e}")
        _remove_partial(destination)
        if isinstance(e, (RequestException, OSError)):
            raise DownloadError(f"Download failed: {e}", url=url) from e
        raise
    finally:
        response.close()

    logger.info(f"Download complete: {destination}")
    return destination


def _follow_redirects(http, url: str, timeout: float, max_redirects: int):
    """
    Issue GET requests until a non-redirect response arrives.

    Returns:
        Successful streaming response

    Raises:
        DownloadError: On network errors or non-success terminal status
        TooManyRedirectsError: If the hop limit is exceeded
    """
    current_url = url

    for hop in range(max_redirects + 1):
        logger.info(f"Downloading from {current_url}")
        try:
            response = http.get(
                current_url, stream=True, timeout=timeout, allow_redirects=False
            )
        except RequestException as e:
            raise DownloadError(
                f"Request to {current_url} failed: {e}", url=current_url
            ) from e

        if response.status_code in REDIRECT_STATUSES:
            location = response.headers.get("Location")
            response.close()
            if not location:
                raise DownloadError(
                    f"Redirect from {current_url} has no Location header",
                    url=current_url,
                    status_code=response.status_code,
                )
            current_url = urljoin(current_url, location)
            logger.debug(f"Redirect {hop + 1} -> {current_url}")
            continue

        if not 200 <= response.status_code < 300:
            response.close()
            raise DownloadError(
                f"Download failed with status code {response.status_code}: "
                f"{current_url}",
                url=current_url,
                status_code=response.status_code,
            )

        return response

    raise TooManyRedirectsError(
        f"Exceeded {max_redirects} redirects while downloading {url}", url=url
    )


def _stream_to_file(
    response,
    destination: Path,
    progress_callback: Optional[Callable[[DownloadProgress], None]],
) -> None:
    """Write the response body to destination chunk by chunk."""
    content_length = response.headers.get("content-length")
    total_size = int(content_length) if content_length else 0

    downloaded = 0
    start_time = time.time()
    last_progress_time = start_time

    with open(destination, "wb") as f:
        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
            if not chunk:
                continue
            f.write(chunk)
            downloaded += len(chunk)

            # Report progress (max once per 0.5 seconds to avoid spam)
            current_time = time.time()
            if progress_callback and (
                current_time - last_progress_time >= 0.5 or downloaded == total_size
            ):
                elapsed = current_time - start_time
                progress_callback(
                    DownloadProgress(
                        bytes_downloaded=downloaded,
                        total_bytes=total_size if total_size > 0 else downloaded,
                        percentage=(downloaded / total_size * 100)
                        if total_size > 0
                        else 0,
                        speed_bps=downloaded / elapsed if elapsed > 0 else 0,
                    )
                )
                last_progress_time = current_time


def _remove_partial(destination: Path) -> None:
    """Delete a partially written file, logging instead of raising."""
    try:
        destination.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Failed to remove partial download {destination}: {e}")


def format_progress(progress: DownloadProgress) -> str:
    """
    Format progress for display.

    Example:
        >>> progress = DownloadProgress(52428800, 104857600, 50.0, 1048576)
        >>> print(format_progress(progress))
        50.0/100.0 MB (50.0%) at 1.0 MB/s
    """
    mb_downloaded = progress.bytes_downloaded / 1024 / 1024
    mb_total = progress.total_bytes / 1024 / 1024
    speed_mbps = progress.speed_bps / 1024 / 1024

    if progress.total_bytes > 0:
        return (
            f"{mb_downloaded:.1f}/{mb_total:.1f} MB "
            f"({progress.percentage:.1f}%) "
            f"at {speed_mbps:.1f} MB/s"
        )
    else:
        return f"{mb_downloaded:.1f} MB at {speed_mbps:.1f} MB/s"


__all__ = [
    "DownloadProgress",
    "download_file",
    "format_progress",
    "REDIRECT_STATUSES",
    "DEFAULT_MAX_REDIRECTS",
]
