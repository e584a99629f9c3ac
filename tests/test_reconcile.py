"""Tests for the post-save image migration sweep."""

import pytest

from fakes import PNG_BYTES, FakeNotion, image_host
from notion_clipper.errors import AuthError
from notion_clipper.media import AssetPipeline
from notion_clipper.reconcile import ReconciliationSweep, is_external_image

GOOD = "https://img.example.com/good.png"
BROKEN = "https://img.example.com/missing.png"


def paragraph(block_id):
    return {"id": block_id, "type": "paragraph", "has_children": False, "paragraph": {"rich_text": []}}


def external_image(block_id, url, caption=None):
    return {
        "id": block_id,
        "type": "image",
        "has_children": False,
        "image": {"type": "external", "external": {"url": url}, "caption": caption or []},
    }


def uploaded_image(block_id):
    return {
        "id": block_id,
        "type": "image",
        "has_children": False,
        "image": {"type": "file_upload", "file_upload": {"id": "fu-0"}, "caption": []},
    }


def test_is_external_image():
    assert is_external_image(external_image("i", GOOD))
    assert not is_external_image(uploaded_image("u"))
    assert not is_external_image(paragraph("p"))


@pytest.fixture
def tree():
    caption = [{"type": "text", "text": {"content": "cap"}}]
    root = [paragraph(f"p{i}") for i in range(120)]
    root[5] = external_image("img-1", GOOD, caption)
    root[7] = uploaded_image("img-0")
    root[110] = {"id": "toggle", "type": "toggle", "has_children": True, "toggle": {"rich_text": []}}
    return {
        "page": root,
        "toggle": [external_image("img-2", BROKEN), external_image("img-3", GOOD)],
    }


@pytest.mark.asyncio
async def test_sweep_migrates_external_images(settings, tree):
    notion = FakeNotion()
    notion.children = tree
    pipeline = AssetPipeline(notion, settings, http=image_host({GOOD: (200, PNG_BYTES, "image/png")}))

    result = await ReconciliationSweep(notion, pipeline).migrate_external_images("page")

    assert (result.processed, result.migrated, result.failed) == (3, 2, 1)
    assert result.visited == 122
    assert not result.stopped_early

    assert [block_id for block_id, _ in notion.updated] == ["img-1", "img-3"]
    block_id, payload = notion.updated[0]
    assert payload == {"image": {
        "type": "file_upload",
        "file_upload": {"id": "upload-1"},
        "caption": [{"type": "text", "text": {"content": "cap"}}],
    }}
    # Root children span two listing pages
    assert ("page", None) in notion.listed
    assert ("page", "100") in notion.listed


@pytest.mark.asyncio
async def test_auth_error_stops_sweep_without_raising(settings, tree):
    notion = FakeNotion(upload_error=AuthError())
    notion.children = tree
    pipeline = AssetPipeline(notion, settings, http=image_host({GOOD: (200, PNG_BYTES, "image/png")}))

    result = await ReconciliationSweep(notion, pipeline).migrate_external_images("page")

    assert result.stopped_early
    assert result.migrated == 0
    assert result.failed == 1
    assert notion.updated == []


@pytest.mark.asyncio
async def test_empty_page(settings):
    notion = FakeNotion()
    pipeline = AssetPipeline(notion, settings, http=image_host({}))

    result = await ReconciliationSweep(notion, pipeline).migrate_external_images("empty")

    assert (result.processed, result.migrated, result.failed, result.visited) == (0, 0, 0, 0)


@pytest.mark.asyncio
async def test_malformed_image_url_is_counted_as_failure(settings):
    notion = FakeNotion()
    notion.children = {"page": [external_image("bad", "https://[cdn/x.png"), external_image("ok", GOOD)]}
    pipeline = AssetPipeline(notion, settings, http=image_host({GOOD: (200, PNG_BYTES, "image/png")}))

    result = await ReconciliationSweep(notion, pipeline).migrate_external_images("page")

    assert (result.processed, result.migrated, result.failed) == (2, 1, 1)
    assert [block_id for block_id, _ in notion.updated] == ["ok"]
