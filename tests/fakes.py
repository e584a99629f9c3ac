"""In-memory stand-ins for Notion and image hosts."""

import asyncio
from types import SimpleNamespace

import httpx

from notion_clipper.errors import UploadError


class FakeNotion:
    """Duck-typed replacement for NotionClient."""

    def __init__(self, fail_uploads=(), upload_error=None, create_error=None,
                 append_error=None, create_delay=0.0):
        self.fail_uploads = set(fail_uploads)
        self.upload_error = upload_error
        self.create_error = create_error
        self.append_error = append_error
        self.create_delay = create_delay
        self.uploads = []
        self.pages = []
        self.appended = []
        self.updated = []
        self.listed = []
        self.children = {}
        self.schema = {"Name": "title", "Source URL": "url", "Tags": "multi_select"}

    async def upload_bytes(self, url, filename, content_type, content):
        if self.upload_error:
            raise self.upload_error
        if url in self.fail_uploads:
            raise UploadError(url, "upload rejected")
        self.uploads.append((url, filename, content_type, len(content)))
        return f"upload-{len(self.uploads)}"

    async def get_database_schema(self, database_id):
        return dict(self.schema)

    async def create_page(self, request):
        if self.create_delay:
            await asyncio.sleep(self.create_delay)
        if self.create_error:
            raise self.create_error
        self.pages.append(request)
        return {"id": "page-1", "url": "https://www.notion.so/page-1"}

    async def append_blocks(self, block_id, blocks):
        if self.append_error:
            raise self.append_error
        self.appended.append((block_id, blocks))
        return len(blocks)

    async def list_children(self, block_id, start_cursor=None, page_size=100):
        self.listed.append((block_id, start_cursor))
        blocks = self.children.get(block_id, [])
        start = int(start_cursor or 0)
        has_more = start + page_size < len(blocks)
        return {
            "results": blocks[start:start + page_size],
            "has_more": has_more,
            "next_cursor": str(start + page_size) if has_more else None,
        }

    async def update_block(self, block_id, **payload):
        self.updated.append((block_id, payload))
        return {"id": block_id}


class FakeSDK:
    """Minimal notion_client.AsyncClient look-alike recording calls."""

    def __init__(self, append_fail_on=None, append_error=None):
        self.calls = []
        self.append_fail_on = append_fail_on
        self.append_error = append_error
        self.pages = SimpleNamespace(create=self._create_page)
        self.databases = SimpleNamespace(retrieve=self._retrieve_database)
        self.blocks = SimpleNamespace(
            children=SimpleNamespace(append=self._append, list=self._list),
            update=self._update,
        )

    async def _create_page(self, **request):
        self.calls.append(("pages.create", request))
        return {"id": "1234-abcd", "url": "https://www.notion.so/Clip-1234abcd"}

    async def _retrieve_database(self, database_id):
        self.calls.append(("databases.retrieve", database_id))
        return {"properties": {"Name": {"type": "title"}, "Link": {"type": "url"}}}

    async def _append(self, block_id, children):
        self.calls.append(("blocks.children.append", (block_id, children)))
        appends = sum(1 for name, _ in self.calls if name == "blocks.children.append")
        if self.append_fail_on == appends:
            raise self.append_error

    async def _list(self, block_id, **kwargs):
        self.calls.append(("blocks.children.list", (block_id, kwargs)))
        return {"results": [], "has_more": False, "next_cursor": None}

    async def _update(self, block_id, **payload):
        self.calls.append(("blocks.update", (block_id, payload)))
        return {"id": block_id}

    async def search(self, **kwargs):
        self.calls.append(("search", kwargs))
        return {"results": [
            {"id": "db-1", "title": [{"plain_text": "Reading List"}]},
            {"id": "db-2", "title": []},
        ]}


def image_host(routes, calls=None):
    """
    httpx client serving canned responses.

    Args:
        routes: URL -> (status, body, content type) or an exception to raise
        calls: Optional list collecting requested URLs
    """
    def handler(request):
        url = str(request.url)
        if calls is not None:
            calls.append(url)
        route = routes.get(url)
        if route is None:
            return httpx.Response(404)
        if isinstance(route, Exception):
            raise route
        status, body, content_type = route
        return httpx.Response(status, content=body, headers={"content-type": content_type})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
