"""Image download, upload and resolution."""

import asyncio
import base64
import binascii
import hashlib
import mimetypes
from pathlib import PurePosixPath
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import unquote_to_bytes, urlparse

import httpx
from loguru import logger

from notion_clipper.config import Settings
from notion_clipper.document import (
    AssetReference,
    Degraded,
    DownloadedAsset,
    ImageState,
)
from notion_clipper.errors import (
    AuthError,
    ClipperError,
    DownloadError,
    RateLimitError,
    UploadError,
)

MIME_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
    "image/bmp": "bmp",
    "image/x-icon": "ico",
    "image/vnd.microsoft.icon": "ico",
    "image/tiff": "tiff",
    "image/heic": "heic",
}

GENERIC_CONTENT_TYPES = ("application/octet-stream", "binary/octet-stream")
DEFAULT_CONTENT_TYPE = "image/jpeg"
USER_AGENT = "Mozilla/5.0 (compatible; notion-clipper)"


def is_image_content_type(content_type: str) -> bool:
    return content_type.startswith("image/")


def _url_path(url: str) -> str:
    try:
        return urlparse(url).path
    except ValueError:
        return ""


def guess_content_type(url: str) -> str:
    content_type, _ = mimetypes.guess_type(_url_path(url))
    return content_type if content_type and is_image_content_type(content_type) else DEFAULT_CONTENT_TYPE


def make_filename(url: str, content_type: str) -> str:
    """Upload filename: the URL's basename when it has an extension, else a hash-based name."""
    ext = MIME_EXTENSIONS.get(content_type, "jpg")
    if not url.startswith("data:"):
        name = PurePosixPath(_url_path(url)).name
        if name and "." in name and len(name) <= 100:
            return name
    digest = hashlib.sha256(url.encode("utf-8")).hexdigest()[:12]
    return f"image-{digest}.{ext}"


class AssetPipeline:
    """
    Download images and rehost them as Notion file uploads.

    Every URL ends up resolved: uploaded when both phases succeed, otherwise
    pointing back at the original URL with the failure recorded.
    """

    def __init__(self, notion, settings: Optional[Settings] = None,
                 http: Optional[httpx.AsyncClient] = None):
        self.notion = notion
        self.settings = settings or Settings()
        self.http = http or httpx.AsyncClient(
            timeout=self.settings.download_timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )
        self.states: Dict[str, ImageState] = {}

    async def aclose(self):
        await self.http.aclose()

    def _transition(self, url: str, state: ImageState):
        self.states[url] = state
        logger.debug("Image {} -> {}", url[:80], state.value)

    # -- download phase ------------------------------------------------------

    async def download(self, url: str) -> DownloadedAsset:
        """
        Fetch one image within the timeout and size ceiling.

        Raises:
            DownloadError: on any failure, including oversize and non-image content
        """
        if url.startswith("data:"):
            return self._decode_data_uri(url)

        try:
            scheme = urlparse(url).scheme
        except ValueError as e:
            raise DownloadError(url, f"Malformed image URL: {e}") from e
        if scheme not in ("http", "https"):
            raise DownloadError(url, f"Unsupported image URL: {url[:80]}")

        limit = self.settings.max_image_bytes
        try:
            async with self.http.stream("GET", url, timeout=self.settings.download_timeout) as response:
                if response.status_code >= 400:
                    raise DownloadError(url, f"HTTP {response.status_code}", response.status_code)

                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > limit:
                    raise DownloadError(url, f"Image too large ({declared} bytes, max {limit})")

                content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
                if content_type and not is_image_content_type(content_type) \
                        and content_type not in GENERIC_CONTENT_TYPES:
                    raise DownloadError(url, f"Not an image: {content_type}")

                chunks = []
                size = 0
                async for chunk in response.aiter_bytes():
                    size += len(chunk)
                    if size > limit:
                        raise DownloadError(url, f"Image too large (max {limit} bytes)")
                    chunks.append(chunk)
        except httpx.TimeoutException as e:
            raise DownloadError(url, f"Timed out after {self.settings.download_timeout}s") from e
        except httpx.HTTPError as e:
            raise DownloadError(url, f"Request failed: {e}") from e
        except (ValueError, httpx.InvalidURL) as e:
            raise DownloadError(url, f"Malformed image URL: {e}") from e

        if not is_image_content_type(content_type):
            content_type = guess_content_type(url)
        return DownloadedAsset(url, b"".join(chunks), content_type, make_filename(url, content_type))

    def _decode_data_uri(self, url: str) -> DownloadedAsset:
        header, sep, payload = url[len("data:"):].partition(",")
        if not sep:
            raise DownloadError(url, "Malformed data URI")

        params = header.split(";")
        content_type = (params[0] or DEFAULT_CONTENT_TYPE).lower()
        if not is_image_content_type(content_type):
            raise DownloadError(url, f"Not an image: {content_type}")

        try:
            if "base64" in params[1:]:
                content = base64.b64decode(payload, validate=False)
            else:
                content = unquote_to_bytes(payload)
        except (binascii.Error, ValueError) as e:
            raise DownloadError(url, f"Undecodable data URI: {e}") from e

        if len(content) > self.settings.max_image_bytes:
            raise DownloadError(url, f"Image too large (max {self.settings.max_image_bytes} bytes)")
        return DownloadedAsset(url, content, content_type, make_filename(url, content_type))

    async def download_all(self, urls: Iterable[str]) -> Tuple[Dict[str, DownloadedAsset], Dict[str, str]]:
        """
        Download in batches of ``download_concurrency``, waiting for each batch.

        Returns:
            (downloaded assets by URL, error messages by URL)
        """
        urls = list(urls)
        results: Dict[str, DownloadedAsset] = {}
        errors: Dict[str, str] = {}
        size = max(1, self.settings.download_concurrency)

        async def fetch(url: str):
            self._transition(url, ImageState.DOWNLOADING)
            try:
                results[url] = await self.download(url)
                self._transition(url, ImageState.DOWNLOADED)
            except DownloadError as e:
                errors[url] = e.message
                self._transition(url, ImageState.DOWNLOAD_FAILED)
                logger.warning("Failed to download {}: {}", url[:80], e.message)

        for i in range(0, len(urls), size):
            await asyncio.gather(*(fetch(url) for url in urls[i:i + size]))

        logger.info("Downloaded {}/{} images", len(results), len(urls))
        return results, errors

    # -- upload phase --------------------------------------------------------

    async def upload(self, asset: DownloadedAsset) -> str:
        """
        Upload downloaded bytes through the two-step protocol.

        Raises:
            UploadError: the upload failed
            RateLimitError, AuthError: document-level failures
        """
        self._transition(asset.url, ImageState.UPLOADING)
        try:
            file_upload_id = await self.notion.upload_bytes(
                asset.url, asset.filename, asset.content_type, asset.content)
        except (RateLimitError, AuthError, UploadError):
            self._transition(asset.url, ImageState.UPLOAD_FAILED)
            raise
        except ClipperError as e:
            self._transition(asset.url, ImageState.UPLOAD_FAILED)
            raise UploadError(asset.url, e.message, e.status) from e
        self._transition(asset.url, ImageState.UPLOADED)
        return file_upload_id

    async def rehost(self, url: str) -> str:
        """Download and upload one URL, raising on failure."""
        self._transition(url, ImageState.DISCOVERED)
        self._transition(url, ImageState.DOWNLOADING)
        try:
            asset = await self.download(url)
        except DownloadError:
            self._transition(url, ImageState.DOWNLOAD_FAILED)
            raise
        self._transition(url, ImageState.DOWNLOADED)
        file_upload_id = await self.upload(asset)
        self._transition(url, ImageState.RESOLVED)
        return file_upload_id

    # -- resolution ----------------------------------------------------------

    async def resolve_assets(self, urls: Iterable[str], upload_enabled: bool = True) -> Dict[str, AssetReference]:
        """
        Resolve every distinct URL to an uploaded file or its external URL.

        Download and upload failures never raise; they fall back to the
        original URL with the reason kept on ``AssetReference.degraded``.

        Args:
            urls: Image URLs (duplicates and empty values are ignored)
            upload_enabled: When False, every URL stays external

        Returns:
            Original URL -> AssetReference
        """
        ordered: List[str] = list(dict.fromkeys(url for url in urls if url))
        for url in ordered:
            self._transition(url, ImageState.DISCOVERED)

        refs: Dict[str, AssetReference] = {}
        if not upload_enabled:
            for url in ordered:
                refs[url] = AssetReference.external(url)
                self._transition(url, ImageState.RESOLVED)
            return refs

        downloaded, errors = await self.download_all(ordered)

        for url in ordered:
            asset = downloaded.pop(url, None)
            if asset is None:
                refs[url] = AssetReference.external(url, Degraded("download", errors.get(url, "not downloaded")))
            else:
                try:
                    refs[url] = AssetReference.uploaded(url, await self.upload(asset))
                except UploadError as e:
                    logger.warning("Upload failed for {}, using original URL: {}", url[:80], e.message)
                    refs[url] = AssetReference.external(url, Degraded("upload", e.message))
            self._transition(url, ImageState.RESOLVED)

        uploaded = sum(1 for ref in refs.values() if ref.is_uploaded)
        logger.info("Resolved {} images ({} uploaded, {} external)", len(refs), uploaded, len(refs) - uploaded)
        return refs
