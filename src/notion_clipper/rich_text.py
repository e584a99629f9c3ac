"""Inline markdown → Notion rich text runs."""

import html
from typing import Dict, Iterable, List, Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from notion_clipper.blocks import (
    MAX_TEXT_LENGTH,
    MAX_URL_LENGTH,
    Annotations,
    InlineSpan,
    RichTextRun,
)

# Wrapper token -> annotation flag it adds
_WRAPPERS = {
    "strong": "bold",
    "emphasis": "italic",
    "strikethrough": "strikethrough",
}

_LINK_SCHEMES = ("http", "https", "mailto")


def split_text(content: str, limit: int = MAX_TEXT_LENGTH) -> List[str]:
    """Split text into chunks of at most ``limit`` characters.

    Joining the chunks gives back ``content`` exactly.
    """
    if limit <= 0:
        raise ValueError("limit must be positive")
    return [content[i:i + limit] for i in range(0, len(content), limit)]


def is_valid_link(url: Optional[str]) -> bool:
    """Absolute http(s)/mailto URL within Notion's URL length limit."""
    if not url or len(url) > MAX_URL_LENGTH:
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    if parsed.scheme not in _LINK_SCHEMES:
        return False
    if parsed.scheme == "mailto":
        return bool(parsed.path)
    return bool(parsed.netloc)


def _html_to_text(raw: str) -> str:
    if raw.strip().lower().startswith("<br"):
        return "\n"
    return BeautifulSoup(raw, "html.parser").get_text()


def flatten_inline(tokens: Iterable[Dict], annotations: Annotations = Annotations(),
                   link: Optional[str] = None) -> List[InlineSpan]:
    """
    Flatten mistune inline tokens into spans.

    Nested wrappers accumulate annotations, so ``***x***`` yields a span with
    both bold and italic set.

    Args:
        tokens: mistune v3 AST inline tokens
        annotations: Formatting inherited from enclosing wrappers
        link: Link target inherited from an enclosing link

    Returns:
        Spans in source order; images become spans with ``image`` set
    """
    spans: List[InlineSpan] = []

    for token in tokens:
        token_type = token.get("type")

        if token_type == "text":
            spans.append(InlineSpan(token.get("raw", ""), annotations, link))

        elif token_type in _WRAPPERS:
            flag = {_WRAPPERS[token_type]: True}
            spans.extend(flatten_inline(token.get("children", []), annotations.merge(**flag), link))

        elif token_type == "codespan":
            spans.append(InlineSpan(token.get("raw", ""), annotations.merge(code=True), link))

        elif token_type == "link":
            url = token.get("attrs", {}).get("url")
            spans.extend(flatten_inline(token.get("children", []), annotations, url or link))

        elif token_type == "image":
            url = token.get("attrs", {}).get("url", "")
            alt = plain_text(flatten_inline(token.get("children", [])))
            spans.append(InlineSpan(alt, annotations, link, image=url))

        elif token_type == "softbreak":
            spans.append(InlineSpan(" ", annotations, link))

        elif token_type == "linebreak":
            spans.append(InlineSpan("\n", annotations, link))

        elif token_type == "inline_html":
            text = _html_to_text(token.get("raw", ""))
            if text:
                spans.append(InlineSpan(text, annotations, link))

        elif "children" in token:
            spans.extend(flatten_inline(token["children"], annotations, link))

        elif token.get("raw"):
            spans.append(InlineSpan(token["raw"], annotations, link))

    return spans


def plain_text(spans: Iterable[InlineSpan]) -> str:
    """Concatenated text of non-image spans."""
    return "".join(span.text for span in spans if not span.is_image)


def build_rich_text(spans: Iterable[InlineSpan]) -> List[RichTextRun]:
    """
    Convert spans into Notion rich text runs.

    Image spans are skipped (the caller turns them into image blocks).
    Entities are decoded, invalid or relative links degrade to plain text,
    adjacent spans with identical formatting are merged, and runs longer
    than MAX_TEXT_LENGTH are split into sibling runs.
    """
    merged: List[List] = []     # [text, annotations, link]

    for span in spans:
        if span.is_image:
            continue
        text = html.unescape(span.text)
        if not text:
            continue
        link = html.unescape(span.link) if span.link else None
        if link and not is_valid_link(link):
            link = None

        if merged and merged[-1][1] == span.annotations and merged[-1][2] == link:
            merged[-1][0] += text
        else:
            merged.append([text, span.annotations, link])

    if not any(text.strip() for text, _, _ in merged):
        return []

    runs: List[RichTextRun] = []
    for text, annotations, link in merged:
        for chunk in split_text(text):
            runs.append(RichTextRun(chunk, annotations, link))
    return runs


def text_to_rich_text(text: str) -> List[RichTextRun]:
    """Plain string → runs (no entity decoding, split at the ceiling)."""
    return [RichTextRun(chunk) for chunk in split_text(text)]
