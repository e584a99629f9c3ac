"""Error taxonomy for Notion Clipper."""

from typing import List, Optional, Dict


ERROR_MESSAGES = {
    "ERR_VALIDATION": "Invalid field value",
    "ERR_IMG_DOWNLOAD_FAILED": "Failed to download image",
    "ERR_IMG_UPLOAD_FAILED": "Failed to upload image to Notion",
    "ERR_NOTION_RATE_LIMIT": "Notion API rate limit exceeded. Please wait a moment and try again",
    "ERR_AUTH_UNAUTHORIZED": "Authentication failed. Please check your API key",
    "ERR_NOTION_NOT_FOUND": "The requested resource was not found in Notion",
    "ERR_NOTION_WRITE_FAILED": "Some blocks could not be written to Notion",
    "ERR_NET_REQUEST_FAILED": "Network request failed. Please try again",
    "ERR_UNKNOWN_ERROR": "An unknown error occurred",
}


class ClipperError(Exception):
    """Base error carrying a stable error code."""

    code = "ERR_UNKNOWN_ERROR"

    def __init__(self, message: Optional[str] = None, status: Optional[int] = None):
        self.message = message or ERROR_MESSAGES.get(self.code, ERROR_MESSAGES["ERR_UNKNOWN_ERROR"])
        self.status = status
        super().__init__(self.message)

    def to_dict(self) -> Dict:
        return {
            "name": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "status": self.status,
        }


class ValidationError(ClipperError):
    """A property value is malformed; the field is dropped."""
    code = "ERR_VALIDATION"


class DownloadError(ClipperError):
    """A single asset could not be downloaded."""
    code = "ERR_IMG_DOWNLOAD_FAILED"

    def __init__(self, url: str, message: Optional[str] = None, status: Optional[int] = None):
        self.url = url
        super().__init__(message, status)


class UploadError(ClipperError):
    """A single asset could not be uploaded."""
    code = "ERR_IMG_UPLOAD_FAILED"

    def __init__(self, url: str, message: Optional[str] = None, status: Optional[int] = None):
        self.url = url
        super().__init__(message, status)


class RateLimitError(ClipperError):
    """Request budget exhausted; the caller must back off."""
    code = "ERR_NOTION_RATE_LIMIT"


class AuthError(ClipperError):
    """Credentials rejected. Never retried."""
    code = "ERR_AUTH_UNAUTHORIZED"


class NotionAPIError(ClipperError):
    """Any other document-level Notion API failure."""
    code = "ERR_NET_REQUEST_FAILED"


class NotFoundError(NotionAPIError):
    code = "ERR_NOTION_NOT_FOUND"


class WriteError(ClipperError):
    """
    Appending blocks failed part-way through.

    Blocks before the failing chunk are committed; ``missing`` holds the
    blocks that were never written, in document order.
    """
    code = "ERR_NOTION_WRITE_FAILED"

    def __init__(self, page_id: str, appended: int, missing: List[Dict],
                 message: Optional[str] = None, page_url: Optional[str] = None):
        self.page_id = page_id
        self.appended = appended
        self.missing = missing
        self.page_url = page_url
        super().__init__(message or (
            f"Appended {appended} blocks, {len(missing)} blocks missing"
        ))

    def to_dict(self) -> Dict:
        data = super().to_dict()
        data.update({"page_id": self.page_id, "appended": self.appended, "missing": len(self.missing)})
        return data


def error_from_status(status: int, text: str = "") -> ClipperError:
    """Map an HTTP status code to the matching error class."""
    if status in (401, 403):
        return AuthError(f"Authentication failed: {text}".rstrip(": "), status)
    if status == 429:
        return RateLimitError(status=status)
    if status == 404:
        return NotFoundError(f"Resource not found: {text}".rstrip(": "), status)
    if status >= 500:
        return NotionAPIError(f"Server error: {status} {text}".strip(), status)
    if status >= 400:
        return NotionAPIError(f"Request failed: {status} {text}".strip(), status)
    return ClipperError(f"Unexpected status: {status}", status)
