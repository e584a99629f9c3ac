"""Markdown nodes, inline spans, and Notion content blocks."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from notion_clipper.document import AssetKind

# Notion protocol limits
MAX_TEXT_LENGTH = 2000
MAX_URL_LENGTH = 2000


@dataclass(frozen=True)
class Annotations:
    """Inline formatting flags. Nested wrappers accumulate, never replace."""
    bold: bool = False
    italic: bool = False
    strikethrough: bool = False
    code: bool = False

    def merge(self, **flags) -> "Annotations":
        values = {
            "bold": self.bold,
            "italic": self.italic,
            "strikethrough": self.strikethrough,
            "code": self.code,
        }
        for key, value in flags.items():
            values[key] = values[key] or value
        return Annotations(**values)

    def to_dict(self) -> Dict:
        return {
            "bold": self.bold,
            "italic": self.italic,
            "strikethrough": self.strikethrough,
            "underline": False,
            "code": self.code,
            "color": "default",
        }


@dataclass(frozen=True)
class InlineSpan:
    """A flattened piece of inline markdown."""
    text: str
    annotations: Annotations = Annotations()
    link: Optional[str] = None
    image: Optional[str] = None     # image URL; ``text`` is then the alt text

    @property
    def is_image(self) -> bool:
        return self.image is not None


@dataclass(frozen=True)
class RichTextRun:
    """One annotated run of at most MAX_TEXT_LENGTH characters."""
    content: str
    annotations: Annotations = Annotations()
    link: Optional[str] = None

    def to_dict(self) -> Dict:
        text = {"content": self.content}
        if self.link:
            text["link"] = {"url": self.link}
        return {
            "type": "text",
            "text": text,
            "annotations": self.annotations.to_dict(),
        }


# ---------------------------------------------------------------------------
# Normalized markdown nodes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Heading:
    level: int
    spans: Tuple[InlineSpan, ...]


@dataclass(frozen=True)
class Paragraph:
    spans: Tuple[InlineSpan, ...]


@dataclass(frozen=True)
class ListItem:
    ordered: bool
    spans: Tuple[InlineSpan, ...]
    depth: int = 0


@dataclass(frozen=True)
class Code:
    language: str
    text: str


@dataclass(frozen=True)
class Quote:
    spans: Tuple[InlineSpan, ...]


@dataclass(frozen=True)
class Divider:
    pass


@dataclass(frozen=True)
class InlineImage:
    url: str
    alt: str = ""


MarkdownNode = Union[Heading, Paragraph, ListItem, Code, Quote, Divider, InlineImage]


# ---------------------------------------------------------------------------
# Notion content blocks
# ---------------------------------------------------------------------------

def _rich_text_dicts(runs: List[RichTextRun]) -> List[Dict]:
    return [run.to_dict() for run in runs]


@dataclass
class HeadingBlock:
    level: int
    rich_text: List[RichTextRun]

    @property
    def block_type(self) -> str:
        return f"heading_{self.level}"

    def to_dict(self) -> Dict:
        return {
            "type": self.block_type,
            self.block_type: {"rich_text": _rich_text_dicts(self.rich_text)},
        }


@dataclass
class ParagraphBlock:
    rich_text: List[RichTextRun]
    block_type = "paragraph"

    def to_dict(self) -> Dict:
        return {"type": "paragraph", "paragraph": {"rich_text": _rich_text_dicts(self.rich_text)}}


@dataclass
class ListItemBlock:
    ordered: bool
    rich_text: List[RichTextRun]

    @property
    def block_type(self) -> str:
        return "numbered_list_item" if self.ordered else "bulleted_list_item"

    def to_dict(self) -> Dict:
        return {
            "type": self.block_type,
            self.block_type: {"rich_text": _rich_text_dicts(self.rich_text)},
        }


@dataclass
class CodeBlock:
    language: str
    rich_text: List[RichTextRun]
    block_type = "code"

    @property
    def text(self) -> str:
        return "".join(run.content for run in self.rich_text)

    def to_dict(self) -> Dict:
        return {
            "type": "code",
            "code": {
                "rich_text": _rich_text_dicts(self.rich_text),
                "language": self.language,
            },
        }


@dataclass
class QuoteBlock:
    rich_text: List[RichTextRun]
    block_type = "quote"

    def to_dict(self) -> Dict:
        return {"type": "quote", "quote": {"rich_text": _rich_text_dicts(self.rich_text)}}


@dataclass
class DividerBlock:
    block_type = "divider"

    def to_dict(self) -> Dict:
        return {"type": "divider", "divider": {}}


@dataclass
class ImageBlock:
    """Image block pointing at exactly one of an uploaded file or an external URL."""
    kind: AssetKind
    value: str
    caption: List[RichTextRun] = field(default_factory=list)
    block_type = "image"

    def to_dict(self) -> Dict:
        if self.kind == AssetKind.UPLOADED:
            image = {"type": "file_upload", "file_upload": {"id": self.value}}
        else:
            image = {"type": "external", "external": {"url": self.value}}
        image["caption"] = _rich_text_dicts(self.caption)
        return {"type": "image", "image": image}


ContentBlock = Union[
    HeadingBlock, ParagraphBlock, ListItemBlock, CodeBlock,
    QuoteBlock, DividerBlock, ImageBlock,
]
