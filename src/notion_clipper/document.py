"""Document models for Notion Clipper."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class AssetKind(str, Enum):
    """Where an image block's content lives."""
    UPLOADED = "uploaded"       # Notion file upload id
    EXTERNAL = "external"       # raw external URL
    UNRESOLVED = "unresolved"   # not yet run through the pipeline


class ImageState(str, Enum):
    """Lifecycle of a single image inside the asset pipeline."""
    DISCOVERED = "discovered"
    DOWNLOADING = "downloading"
    DOWNLOADED = "downloaded"
    DOWNLOAD_FAILED = "download_failed"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    UPLOAD_FAILED = "upload_failed"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class Degraded:
    """Why an asset fell back to its external URL."""
    stage: str      # 'download', 'upload' or 'disabled'
    reason: str


@dataclass(frozen=True)
class AssetReference:
    """Resolved pointer for one distinct image URL."""
    original_url: str
    kind: AssetKind = AssetKind.UNRESOLVED
    value: Optional[str] = None     # file upload id or URL, depending on kind
    degraded: Optional[Degraded] = None

    @classmethod
    def uploaded(cls, original_url: str, file_upload_id: str) -> "AssetReference":
        return cls(original_url, AssetKind.UPLOADED, file_upload_id)

    @classmethod
    def external(cls, original_url: str, degraded: Optional[Degraded] = None) -> "AssetReference":
        return cls(original_url, AssetKind.EXTERNAL, original_url, degraded)

    @property
    def is_uploaded(self) -> bool:
        return self.kind == AssetKind.UPLOADED

    @property
    def is_resolved(self) -> bool:
        return self.kind != AssetKind.UNRESOLVED and bool(self.value)

    def to_file_object(self) -> Dict:
        """Notion file object usable for icons, covers and files properties."""
        if self.kind == AssetKind.UPLOADED:
            return {"type": "file_upload", "file_upload": {"id": self.value}}
        return {"type": "external", "external": {"url": self.value}}


@dataclass
class UploadSession:
    """Notion file upload object created by step one of the upload protocol."""
    id: str
    filename: str
    content_type: str
    status: str = "pending"     # pending, uploaded, failed

    @property
    def is_uploaded(self) -> bool:
        return self.status == "uploaded"


@dataclass
class DownloadedAsset:
    """Image bytes fetched during the download phase."""
    url: str
    content: bytes
    content_type: str
    filename: str


@dataclass
class ExtractedImage:
    """Image discovered by the extractor."""
    src: str
    alt: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None


# camelCase keys used by the browser extension wire format
_ARTICLE_ALIASES = {
    "mainImage": "main_image",
    "authorName": "author",
    "publishDate": "publish_date",
}


@dataclass
class Article:
    """Extracted article handed over by the content extractor."""
    title: str
    content: str            # Markdown
    url: str = ""
    main_image: Optional[str] = None
    favicon: Optional[str] = None
    images: List[ExtractedImage] = field(default_factory=list)
    excerpt: Optional[str] = None
    author: Optional[str] = None
    publish_date: Optional[str] = None
    domain: Optional[str] = None
    tags: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Article":
        """Build from extractor JSON (camelCase or snake_case keys)."""
        values = {}
        known = set(cls.__dataclass_fields__)
        for key, value in data.items():
            key = _ARTICLE_ALIASES.get(key, key)
            if key in known:
                values[key] = value

        values["images"] = [
            img if isinstance(img, ExtractedImage) else ExtractedImage(
                src=img["src"], alt=img.get("alt"),
                width=img.get("width"), height=img.get("height"),
            )
            for img in values.get("images") or []
            if isinstance(img, ExtractedImage) or img.get("src")
        ]
        tags = values.get("tags") or []
        values["tags"] = [tags] if isinstance(tags, str) else list(tags)
        values.setdefault("title", "Untitled")
        values.setdefault("content", "")
        return cls(**values)

    def get_field(self, name: str) -> Any:
        """Look up an article field by mapping source name."""
        name = _ARTICLE_ALIASES.get(name, name)
        return getattr(self, name, None)

    def alt_for(self, src: str) -> str:
        for img in self.images:
            if img.src == src and img.alt:
                return img.alt
        return ""


@dataclass
class DocumentDraft:
    """Everything needed for one page create call. Consumed once."""
    properties: Dict[str, Any]      # property name -> PropertyValue
    blocks: List[Any]               # ContentBlock
    icon: Optional[AssetReference] = None
    cover: Optional[AssetReference] = None


@dataclass
class SaveResult:
    """Result of saving one article."""
    page_id: str
    url: str
    block_count: int = 0
    uploaded_images: int = 0
    external_images: int = 0
    dropped_blocks: int = 0


@dataclass
class SweepResult:
    """Counts reported by the reconciliation sweep."""
    processed: int = 0
    migrated: int = 0
    failed: int = 0
    visited: int = 0
    stopped_early: bool = False
