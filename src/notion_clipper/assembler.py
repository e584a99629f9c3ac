"""Assemble page create requests within Notion's per-request limits."""

from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from notion_clipper.converter import is_embeddable_url
from notion_clipper.document import AssetReference, DocumentDraft

MAX_CHILDREN_PER_REQUEST = 100


def plan_batches(blocks: List[Any], size: int = MAX_CHILDREN_PER_REQUEST) -> List[List[Any]]:
    """Split blocks into consecutive chunks of at most ``size``."""
    return [blocks[i:i + size] for i in range(0, len(blocks), size)]


def _file_object(ref: Optional[AssetReference], label: str) -> Optional[Dict]:
    """Icon/cover payload, or None when the reference cannot be used."""
    if ref is None or not ref.is_resolved:
        return None
    if not ref.is_uploaded and not is_embeddable_url(ref.value):
        logger.debug("Omitting {}: unusable URL ({} chars)", label, len(ref.value))
        return None
    return ref.to_file_object()


def assemble(properties: Dict[str, Any], blocks: List[Any],
             icon: Optional[AssetReference] = None,
             cover: Optional[AssetReference] = None,
             parent: Optional[Dict] = None) -> Tuple[Dict, List[Dict]]:
    """
    Build the page create request.

    Args:
        properties: Property name -> PropertyValue
        blocks: Compiled content blocks
        icon: Favicon reference (omitted if unusable)
        cover: Cover image reference (omitted if unusable)
        parent: Notion parent object, e.g. ``{"database_id": ...}``

    Returns:
        (create request, overflow blocks to append after creation)
    """
    children = [block.to_dict() if hasattr(block, "to_dict") else block for block in blocks]

    request: Dict = {
        "properties": {name: value.to_dict() for name, value in properties.items()},
        "children": children[:MAX_CHILDREN_PER_REQUEST],
    }
    if parent:
        request["parent"] = parent

    icon_object = _file_object(icon, "icon")
    if icon_object:
        request["icon"] = icon_object
    cover_object = _file_object(cover, "cover")
    if cover_object:
        request["cover"] = cover_object

    overflow = children[MAX_CHILDREN_PER_REQUEST:]
    if overflow:
        logger.debug("{} blocks exceed the create limit, {} append batches needed",
                     len(overflow), len(plan_batches(overflow)))
    return request, overflow


def assemble_draft(draft: DocumentDraft, parent: Optional[Dict] = None) -> Tuple[Dict, List[Dict]]:
    return assemble(draft.properties, draft.blocks, draft.icon, draft.cover, parent)
