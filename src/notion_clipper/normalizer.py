"""Markdown token stream → flat list of semantic nodes."""

from typing import Dict, List, Optional
from urllib.parse import urljoin

import mistune
from bs4 import BeautifulSoup
from loguru import logger

from notion_clipper.blocks import (
    Code,
    Divider,
    Heading,
    InlineImage,
    InlineSpan,
    ListItem,
    MarkdownNode,
    Paragraph,
    Quote,
)
from notion_clipper.rich_text import flatten_inline, plain_text

# Block tokens whose children are inline tokens
_TEXT_CONTAINERS = ("paragraph", "block_text", "heading")


class MarkdownNormalizer:
    """Parse markdown with mistune and normalize it to MarkdownNode objects."""

    def __init__(self):
        self._parser = mistune.create_markdown(
            renderer="ast",
            plugins=["strikethrough", "url"],
        )
        self._base_url: Optional[str] = None

    def parse(self, markdown: str, base_url: Optional[str] = None) -> List[MarkdownNode]:
        """
        Parse markdown into normalized nodes.

        Args:
            markdown: Markdown source
            base_url: Page URL used to absolutize relative image sources

        Returns:
            Nodes in document order
        """
        self._base_url = base_url
        tokens = self._parser(markdown or "")
        if isinstance(tokens, str):
            return []

        nodes: List[MarkdownNode] = []
        for token in tokens:
            nodes.extend(self._block(token))

        logger.debug("Normalized markdown into {} nodes", len(nodes))
        return nodes

    def _resolve(self, url: str) -> str:
        if self._base_url and url and not url.startswith(("data:", "http://", "https://")):
            try:
                return urljoin(self._base_url, url)
            except ValueError:
                logger.debug("Could not resolve image URL against base: {}", url[:80])
        return url

    def _spans(self, children: List[Dict]) -> tuple:
        spans = []
        for span in flatten_inline(children):
            if span.is_image:
                span = InlineSpan(span.text, span.annotations, span.link, image=self._resolve(span.image))
            spans.append(span)
        return tuple(spans)

    def _block(self, token: Dict, list_depth: int = 0) -> List[MarkdownNode]:
        token_type = token.get("type")

        if token_type == "blank_line":
            return []

        if token_type == "heading":
            level = token.get("attrs", {}).get("level", 1)
            return [Heading(level, self._spans(token.get("children", [])))]

        if token_type in ("paragraph", "block_text"):
            spans = self._spans(token.get("children", []))
            # A paragraph holding only images is a run of top-level images
            if spans and all(span.is_image or not span.text.strip() for span in spans):
                return [InlineImage(span.image, span.text) for span in spans if span.is_image]
            return [Paragraph(spans)]

        if token_type == "block_quote":
            return [Quote(tuple(self._quote_spans(token.get("children", []))))]

        if token_type == "list":
            return self._list(token, list_depth)

        if token_type == "block_code":
            info = (token.get("attrs") or {}).get("info") or ""
            language = info.split()[0] if info.strip() else ""
            text = token.get("raw", "")
            if text.endswith("\n"):
                text = text[:-1]
            return [Code(language, text)]

        if token_type == "thematic_break":
            return [Divider()]

        if token_type == "block_html":
            return self._html_block(token.get("raw", ""))

        logger.debug("Skipping unsupported markdown token: {}", token_type)
        return []

    def _list(self, token: Dict, depth: int) -> List[MarkdownNode]:
        ordered = bool(token.get("attrs", {}).get("ordered"))
        if depth > 0:
            logger.debug("Flattening nested list at depth {}", depth)

        nodes: List[MarkdownNode] = []
        for item in token.get("children", []):
            item_spans: List[InlineSpan] = []
            trailing: List[MarkdownNode] = []

            for child in item.get("children", []):
                if child.get("type") in ("block_text", "paragraph") and not trailing:
                    if item_spans:
                        item_spans.append(InlineSpan("\n"))
                    item_spans.extend(self._spans(child.get("children", [])))
                elif child.get("type") == "list":
                    trailing.extend(self._list(child, depth + 1))
                else:
                    trailing.extend(self._block(child, depth + 1))

            nodes.append(ListItem(ordered, tuple(item_spans), depth))
            nodes.extend(trailing)
        return nodes

    def _quote_spans(self, children: List[Dict]) -> List[InlineSpan]:
        """Collapse everything inside a block quote into one run of spans."""
        spans: List[InlineSpan] = []
        for child in children:
            child_type = child.get("type")
            if child_type == "blank_line":
                continue
            if spans:
                spans.append(InlineSpan("\n"))
            if child_type in _TEXT_CONTAINERS:
                spans.extend(self._spans(child.get("children", [])))
            elif child_type == "block_code":
                spans.append(InlineSpan(child.get("raw", "").rstrip("\n")))
            elif "children" in child:
                nested = self._quote_spans(child["children"])
                spans.extend(nested)
            elif child_type == "block_html":
                spans.append(InlineSpan(BeautifulSoup(child.get("raw", ""), "html.parser").get_text()))
        if spans and spans[-1].text == "\n" and not spans[-1].is_image:
            spans.pop()
        return spans

    def _html_block(self, raw: str) -> List[MarkdownNode]:
        """Raw HTML degrades to its images plus its visible text."""
        soup = BeautifulSoup(raw, "html.parser")
        nodes: List[MarkdownNode] = []
        for img in soup.find_all("img"):
            src = img.get("src") or img.get("data-src")
            if src:
                nodes.append(InlineImage(self._resolve(src), img.get("alt") or ""))
        text = soup.get_text().strip()
        if text:
            nodes.insert(0, Paragraph((InlineSpan(text),)))
        return nodes


def collect_image_urls(nodes: List[MarkdownNode]) -> List[str]:
    """Distinct image URLs referenced by the nodes, in document order."""
    urls: List[str] = []
    for node in nodes:
        if isinstance(node, InlineImage):
            candidates = [node.url]
        else:
            candidates = [span.image for span in getattr(node, "spans", ()) if span.is_image]
        for url in candidates:
            if url and url not in urls:
                urls.append(url)
    return urls


def node_text(node: MarkdownNode) -> str:
    """Best-effort plain text of a node."""
    if isinstance(node, Code):
        return node.text
    if isinstance(node, InlineImage):
        return node.alt
    return plain_text(getattr(node, "spans", ()))
