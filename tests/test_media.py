"""Tests for the image download/upload pipeline."""

import asyncio
import base64

import httpx
import pytest

from fakes import PNG_BYTES, FakeNotion, image_host
from notion_clipper.config import Settings
from notion_clipper.document import AssetKind, ImageState
from notion_clipper.errors import DownloadError, RateLimitError
from notion_clipper.media import AssetPipeline, guess_content_type, make_filename

IMG_A = "https://img.example.com/a.png"
IMG_B = "https://img.example.com/b.png"


def test_make_filename_uses_basename():
    assert make_filename("https://img.example.com/photos/cat.jpg?w=200", "image/jpeg") == "cat.jpg"


def test_make_filename_falls_back_to_hash():
    name = make_filename("https://img.example.com/render", "image/webp")
    assert name.startswith("image-")
    assert name.endswith(".webp")
    assert name == make_filename("https://img.example.com/render", "image/webp")


def test_guess_content_type():
    assert guess_content_type("https://x.com/a.gif") == "image/gif"
    assert guess_content_type("https://x.com/noext") == "image/jpeg"


@pytest.mark.asyncio
async def test_resolves_uploaded_asset(settings):
    notion = FakeNotion()
    pipeline = AssetPipeline(notion, settings, http=image_host({IMG_A: (200, PNG_BYTES, "image/png")}))

    refs = await pipeline.resolve_assets([IMG_A])

    assert refs[IMG_A].kind == AssetKind.UPLOADED
    assert refs[IMG_A].value == "upload-1"
    assert refs[IMG_A].degraded is None
    assert notion.uploads == [(IMG_A, "a.png", "image/png", len(PNG_BYTES))]
    assert pipeline.states[IMG_A] == ImageState.RESOLVED


@pytest.mark.asyncio
async def test_download_failure_keeps_external_url(settings):
    notion = FakeNotion()
    pipeline = AssetPipeline(notion, settings, http=image_host({}))

    refs = await pipeline.resolve_assets([IMG_A])

    ref = refs[IMG_A]
    assert ref.kind == AssetKind.EXTERNAL
    assert ref.value == IMG_A
    assert ref.degraded.stage == "download"
    assert "404" in ref.degraded.reason
    assert notion.uploads == []


@pytest.mark.asyncio
async def test_download_timeout_keeps_external_url(settings):
    pipeline = AssetPipeline(FakeNotion(), settings,
                             http=image_host({IMG_A: httpx.ReadTimeout("slow")}))

    refs = await pipeline.resolve_assets([IMG_A])

    assert refs[IMG_A].kind == AssetKind.EXTERNAL
    assert refs[IMG_A].degraded.stage == "download"


@pytest.mark.asyncio
async def test_oversized_image_is_not_uploaded():
    settings = Settings(max_image_bytes=10, upload_poll_interval=0)
    notion = FakeNotion()
    pipeline = AssetPipeline(notion, settings, http=image_host({IMG_A: (200, PNG_BYTES, "image/png")}))

    refs = await pipeline.resolve_assets([IMG_A])

    assert refs[IMG_A].kind == AssetKind.EXTERNAL
    assert "too large" in refs[IMG_A].degraded.reason
    assert notion.uploads == []


@pytest.mark.asyncio
async def test_non_image_content_is_rejected(settings):
    pipeline = AssetPipeline(FakeNotion(), settings,
                             http=image_host({IMG_A: (200, b"<html></html>", "text/html")}))

    with pytest.raises(DownloadError):
        await pipeline.download(IMG_A)


@pytest.mark.asyncio
async def test_upload_failure_keeps_external_url(settings):
    notion = FakeNotion(fail_uploads=[IMG_A])
    routes = {IMG_A: (200, PNG_BYTES, "image/png"), IMG_B: (200, PNG_BYTES, "image/png")}
    pipeline = AssetPipeline(notion, settings, http=image_host(routes))

    refs = await pipeline.resolve_assets([IMG_A, IMG_B])

    assert refs[IMG_A].kind == AssetKind.EXTERNAL
    assert refs[IMG_A].degraded.stage == "upload"
    assert refs[IMG_B].kind == AssetKind.UPLOADED


@pytest.mark.asyncio
async def test_uploads_disabled_skips_network(settings):
    calls = []
    notion = FakeNotion()
    pipeline = AssetPipeline(notion, settings, http=image_host({IMG_A: (200, PNG_BYTES, "image/png")}, calls))

    refs = await pipeline.resolve_assets([IMG_A, IMG_B], upload_enabled=False)

    assert {ref.kind for ref in refs.values()} == {AssetKind.EXTERNAL}
    assert calls == []
    assert notion.uploads == []


@pytest.mark.asyncio
async def test_duplicates_resolve_once(settings):
    calls = []
    notion = FakeNotion()
    pipeline = AssetPipeline(notion, settings, http=image_host({IMG_A: (200, PNG_BYTES, "image/png")}, calls))

    refs = await pipeline.resolve_assets([IMG_A, IMG_A, "", IMG_A])

    assert list(refs) == [IMG_A]
    assert calls == [IMG_A]
    assert len(notion.uploads) == 1


@pytest.mark.asyncio
async def test_resolution_is_idempotent(settings):
    routes = {IMG_A: (200, PNG_BYTES, "image/png")}
    urls = [IMG_A, IMG_B]

    first = await AssetPipeline(FakeNotion(), settings, http=image_host(routes)).resolve_assets(urls)
    second = await AssetPipeline(FakeNotion(), settings, http=image_host(routes)).resolve_assets(urls)

    assert {url: ref.kind for url, ref in first.items()} == {url: ref.kind for url, ref in second.items()}


@pytest.mark.asyncio
async def test_downloads_run_in_bounded_batches(settings):
    active = 0
    peak = 0

    async def handler(request):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return httpx.Response(200, content=PNG_BYTES, headers={"content-type": "image/png"})

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    pipeline = AssetPipeline(FakeNotion(), settings, http=http)
    urls = [f"https://img.example.com/{i}.png" for i in range(7)]

    downloaded, errors = await pipeline.download_all(urls)

    assert len(downloaded) == 7
    assert errors == {}
    assert peak == settings.download_concurrency == 3


@pytest.mark.asyncio
async def test_data_uri_is_decoded_locally(settings):
    calls = []
    notion = FakeNotion()
    data_uri = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()
    pipeline = AssetPipeline(notion, settings, http=image_host({}, calls))

    refs = await pipeline.resolve_assets([data_uri])

    assert refs[data_uri].kind == AssetKind.UPLOADED
    assert calls == []
    _, filename, content_type, size = notion.uploads[0]
    assert filename.startswith("image-") and filename.endswith(".png")
    assert content_type == "image/png"
    assert size == len(PNG_BYTES)


@pytest.mark.asyncio
async def test_rate_limit_during_upload_propagates(settings):
    notion = FakeNotion(upload_error=RateLimitError())
    pipeline = AssetPipeline(notion, settings, http=image_host({IMG_A: (200, PNG_BYTES, "image/png")}))

    with pytest.raises(RateLimitError):
        await pipeline.resolve_assets([IMG_A])


@pytest.mark.asyncio
async def test_unsupported_scheme(settings):
    pipeline = AssetPipeline(FakeNotion(), settings, http=image_host({}))
    with pytest.raises(DownloadError):
        await pipeline.download("ftp://files.example.com/a.png")


@pytest.mark.asyncio
async def test_malformed_url_degrades_without_aborting(settings):
    broken = "https://[broken/a.png"
    notion = FakeNotion()
    pipeline = AssetPipeline(notion, settings, http=image_host({IMG_A: (200, PNG_BYTES, "image/png")}))

    refs = await pipeline.resolve_assets([IMG_A, broken])

    assert refs[IMG_A].kind == AssetKind.UPLOADED
    assert refs[broken].kind == AssetKind.EXTERNAL
    assert refs[broken].degraded.stage == "download"
    assert "Malformed" in refs[broken].degraded.reason
    assert pipeline.states[broken] == ImageState.RESOLVED


@pytest.mark.asyncio
async def test_rehost_malformed_url_raises_download_error(settings):
    pipeline = AssetPipeline(FakeNotion(), settings, http=image_host({}))
    with pytest.raises(DownloadError):
        await pipeline.rehost("https://[broken/a.png")


def test_filename_for_malformed_url():
    assert make_filename("https://[broken/a.png", "image/png").endswith(".png")
    assert guess_content_type("https://[broken/a.gif") == "image/jpeg"
