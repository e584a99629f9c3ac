"""Format converter from normalized markdown nodes to Notion blocks."""

from typing import Dict, List, Optional
from urllib.parse import urlparse

from loguru import logger

from notion_clipper.blocks import (
    MAX_URL_LENGTH,
    Code,
    CodeBlock,
    ContentBlock,
    Divider,
    DividerBlock,
    Heading,
    HeadingBlock,
    ImageBlock,
    InlineImage,
    InlineSpan,
    ListItem,
    ListItemBlock,
    MarkdownNode,
    Paragraph,
    ParagraphBlock,
    Quote,
    QuoteBlock,
)
from notion_clipper.document import AssetKind, AssetReference
from notion_clipper.normalizer import MarkdownNormalizer, node_text
from notion_clipper.rich_text import build_rich_text, split_text, text_to_rich_text

PLAIN_TEXT = "plain text"

# Languages accepted by Notion code blocks
NOTION_LANGUAGES = frozenset([
    "abap", "abc", "agda", "arduino", "ascii art", "assembly", "bash", "basic", "bnf",
    "c", "c#", "c++", "clojure", "coffeescript", "coq", "css", "dart", "dhall", "diff",
    "docker", "ebnf", "elixir", "elm", "erlang", "f#", "flow", "fortran", "gherkin",
    "glsl", "go", "graphql", "groovy", "haskell", "hcl", "html", "idris", "java",
    "javascript", "json", "julia", "kotlin", "latex", "less", "lisp", "livescript",
    "llvm ir", "lua", "makefile", "markdown", "markup", "matlab", "mathematica",
    "mermaid", "nix", "notion formula", "objective-c", "ocaml", "pascal", "perl", "php",
    "plain text", "powershell", "prolog", "protobuf", "purescript", "python", "r",
    "racket", "reason", "ruby", "rust", "sass", "scala", "scheme", "scss", "shell",
    "smalltalk", "solidity", "sql", "swift", "toml", "typescript", "vb.net", "verilog",
    "vhdl", "visual basic", "webassembly", "xml", "yaml", "java/c/c++/c#",
])

LANGUAGE_ALIASES = {
    "ts": "typescript", "tsx": "typescript",
    "js": "javascript", "jsx": "javascript", "mjs": "javascript", "node": "javascript",
    "py": "python", "python3": "python", "py3": "python",
    "sh": "shell", "zsh": "shell", "console": "shell", "shell-session": "shell",
    "ps1": "powershell", "pwsh": "powershell",
    "yml": "yaml", "md": "markdown",
    "rb": "ruby", "rs": "rust", "kt": "kotlin", "kts": "kotlin",
    "golang": "go", "cs": "c#", "csharp": "c#", "fsharp": "f#",
    "cpp": "c++", "cc": "c++", "cxx": "c++", "hpp": "c++", "h": "c",
    "objc": "objective-c", "objectivec": "objective-c",
    "dockerfile": "docker", "make": "makefile", "tex": "latex",
    "htm": "html", "xhtml": "html", "svg": "xml",
    "text": PLAIN_TEXT, "txt": PLAIN_TEXT, "plaintext": PLAIN_TEXT, "plain": PLAIN_TEXT,
    "proto": "protobuf", "gql": "graphql", "tf": "hcl", "wasm": "webassembly",
    "vb": "visual basic", "patch": "diff", "ml": "ocaml", "clj": "clojure",
    "ex": "elixir", "exs": "elixir", "erl": "erlang", "hs": "haskell", "jl": "julia",
    "pl": "perl", "scm": "scheme", "sol": "solidity", "psql": "sql", "mysql": "sql",
}


def normalize_language(language: Optional[str]) -> str:
    """Map a fence info string to a Notion code language."""
    if not language:
        return PLAIN_TEXT
    lang = language.strip().lower()
    lang = LANGUAGE_ALIASES.get(lang, lang)
    return lang if lang in NOTION_LANGUAGES else PLAIN_TEXT


def clamp_heading_level(level: int) -> int:
    return max(1, min(int(level), 3))


def is_embeddable_url(url: Optional[str]) -> bool:
    """External image URLs Notion accepts: http(s) and within the length limit."""
    if not url or len(url) > MAX_URL_LENGTH:
        return False
    try:
        return urlparse(url).scheme in ("http", "https")
    except ValueError:
        return False


class MarkdownConverter:
    """Compile normalized markdown nodes into Notion content blocks."""

    def __init__(self):
        self.normalizer = MarkdownNormalizer()
        self.diagnostics: List[str] = []

    def markdown_to_notion_blocks(self, markdown: str,
                                  asset_map: Optional[Dict[str, AssetReference]] = None,
                                  base_url: Optional[str] = None) -> List[Dict]:
        """Convert markdown straight to Notion block objects."""
        nodes = self.normalizer.parse(markdown, base_url=base_url)
        return [block.to_dict() for block in self.compile(nodes, asset_map)]

    def compile(self, nodes: List[MarkdownNode],
                asset_map: Optional[Dict[str, AssetReference]] = None) -> List[ContentBlock]:
        """
        Compile nodes into blocks, preserving document order.

        A node that fails to compile degrades to a plain text paragraph; the
        rest of the document is always compiled.

        Args:
            nodes: Output of MarkdownNormalizer.parse
            asset_map: Original image URL -> resolved AssetReference

        Returns:
            Content blocks
        """
        if asset_map is None:
            asset_map = {}
        self.diagnostics = []

        blocks: List[ContentBlock] = []
        for index, node in enumerate(nodes):
            try:
                blocks.extend(self._compile_node(node, asset_map))
            except Exception as e:
                self._diagnose("Node {} ({}) failed to compile, using plain text: {}".format(
                    index, type(node).__name__, e))
                blocks.extend(self._fallback(node))

        logger.debug("Compiled {} nodes into {} blocks", len(nodes), len(blocks))
        return blocks

    def _diagnose(self, message: str):
        logger.warning(message)
        self.diagnostics.append(message)

    def _compile_node(self, node: MarkdownNode, asset_map: Dict[str, AssetReference]) -> List[ContentBlock]:
        if isinstance(node, Heading):
            return self._text_block(
                HeadingBlock(clamp_heading_level(node.level), build_rich_text(node.spans)),
                node.spans, asset_map,
            )

        if isinstance(node, Paragraph):
            return self._text_block(ParagraphBlock(build_rich_text(node.spans)), node.spans, asset_map)

        if isinstance(node, Quote):
            return self._text_block(QuoteBlock(build_rich_text(node.spans)), node.spans, asset_map)

        if isinstance(node, ListItem):
            # Nested items keep their content but lose indentation
            block = ListItemBlock(node.ordered, build_rich_text(node.spans))
            blocks = [block]
            blocks.extend(self._inline_images(node.spans, asset_map))
            return blocks

        if isinstance(node, Code):
            return self._code_blocks(node)

        if isinstance(node, Divider):
            return [DividerBlock()]

        if isinstance(node, InlineImage):
            image = self._image_block(node.url, node.alt, asset_map)
            return [image] if image else []

        raise TypeError(f"Unknown node type: {type(node).__name__}")

    def _text_block(self, block, spans, asset_map) -> List[ContentBlock]:
        """Text block followed by the images extracted from its spans."""
        images = self._inline_images(spans, asset_map)
        if not block.rich_text and images:
            return images
        return [block] + images

    def _inline_images(self, spans: List[InlineSpan], asset_map) -> List[ContentBlock]:
        blocks = []
        for span in spans:
            if span.is_image:
                image = self._image_block(span.image, span.text, asset_map)
                if image:
                    blocks.append(image)
        return blocks

    def _code_blocks(self, node: Code) -> List[ContentBlock]:
        language = normalize_language(node.language)
        chunks = split_text(node.text) or [""]
        if len(chunks) > 1:
            logger.info("Split large code block ({} chars) into {} blocks", len(node.text), len(chunks))
        return [CodeBlock(language, text_to_rich_text(chunk) if chunk else []) for chunk in chunks]

    def _image_block(self, url: str, alt: str, asset_map: Dict[str, AssetReference]) -> Optional[ImageBlock]:
        ref = asset_map.get(url)
        if ref is None or not ref.is_resolved:
            ref = AssetReference.external(url)

        caption = text_to_rich_text(alt) if alt else []
        if ref.kind == AssetKind.UPLOADED:
            return ImageBlock(AssetKind.UPLOADED, ref.value, caption)

        if not is_embeddable_url(ref.value):
            self._diagnose("Dropping image with unusable external URL ({} chars): {}".format(
                len(ref.value or ""), (ref.value or "")[:80]))
            return None
        return ImageBlock(AssetKind.EXTERNAL, ref.value, caption)

    def _fallback(self, node: MarkdownNode) -> List[ContentBlock]:
        try:
            text = node_text(node)
        except Exception as e:
            logger.warning("No plain text fallback for {}: {}", type(node).__name__, e)
            return []
        if not text.strip():
            return []
        return [ParagraphBlock(text_to_rich_text(text))]
