"""
Image Download Module
Fetches a reference image from a direct image URL.
"""

import logging
from pathlib import Path
from typing import Optional

import httpx

from core.config import DownloadSettings
from core.errors import AcquisitionError
from utils.file_utils import ensure_directory
from utils.retry import call_with_retry

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class RetryableDownloadError(AcquisitionError):
    pass


def _fetch(client: httpx.Client, url: str) -> bytes:
    try:
        response = client.get(url)
    except httpx.TimeoutException as e:
        raise RetryableDownloadError(f"Timed out downloading {url}", url=url) from e
    except httpx.TransportError as e:
        raise RetryableDownloadError(f"Could not connect to {url}: {e}", url=url) from e

    if response.status_code in RETRYABLE_STATUS:
        raise RetryableDownloadError(f"Server returned {response.status_code} for {url}",
                                     url=url, status=response.status_code)
    if response.status_code >= 400:
        raise AcquisitionError(f"Failed to download image: {response.status_code} {response.reason_phrase}",
                               url=url, status=response.status_code)

    content_type = response.headers.get('content-type', '')
    if content_type and not content_type.startswith('image/') and 'octet-stream' not in content_type:
        raise AcquisitionError(f"URL did not return an image (content-type {content_type})", url=url)
    if not response.content:
        raise AcquisitionError("Downloaded image is empty", url=url)
    return response.content


def download_image(url: str, output_path: Path,
                   settings: Optional[DownloadSettings] = None,
                   client: Optional[httpx.Client] = None) -> Path:
    """Download `url` to `output_path`, retrying transient failures."""
    if not url or not url.startswith(('http://', 'https://')):
        raise AcquisitionError(f"Invalid image URL: {url!r}", url=url)
    settings = settings or DownloadSettings()
    output_path = Path(output_path)
    ensure_directory(output_path.parent)

    owns_client = client is None
    client = client or httpx.Client(timeout=settings.timeout, follow_redirects=True)
    try:
        logger.info("Downloading reference image from %s", url)
        content = call_with_retry(
            lambda: _fetch(client, url),
            settings.retry,
            retry_on=(RetryableDownloadError,),
            description=f"Download of {url}",
        )
    finally:
        if owns_client:
            client.close()

    output_path.write_bytes(content)
    logger.info("Image downloaded to %s (%d bytes)", output_path, len(content))
    return output_path
