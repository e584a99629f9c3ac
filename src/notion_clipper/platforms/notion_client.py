"""Notion platform client wrapper around notion-sdk-py."""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from loguru import logger
from notion_client import AsyncClient
from notion_client.errors import HTTPResponseError, RequestTimeoutError

from notion_clipper.config import Settings
from notion_clipper.document import UploadSession
from notion_clipper.errors import (
    ClipperError,
    NotionAPIError,
    UploadError,
    WriteError,
    error_from_status,
)
from notion_clipper.rate_limit import RequestBudget

API_BASE = "https://api.notion.com/v1"
MAX_CHILDREN_PER_REQUEST = 100


def page_url(page: Dict) -> str:
    """Public URL of a created page."""
    return page.get("url") or page.get("public_url") or \
        f"https://notion.so/{page['id'].replace('-', '')}"


class NotionClient:
    """Async wrapper around notion-sdk-py with file upload support."""

    def __init__(self, api_token: str, settings: Optional[Settings] = None,
                 client: Optional[Any] = None, http: Optional[httpx.AsyncClient] = None,
                 budget: Optional[RequestBudget] = None):
        self.settings = settings or Settings()
        self.client = client or AsyncClient(auth=api_token)
        self.api_token = api_token  # Store for direct API calls
        self.http = http or httpx.AsyncClient(timeout=self.settings.upload_timeout)
        self.budget = budget or RequestBudget(self.settings.requests_per_minute)
        logger.debug("NotionClient initialized: budget={}/min", self.budget.per_minute)

    async def aclose(self):
        await self.http.aclose()
        close = getattr(self.client, "aclose", None)
        if close:
            await close()

    async def __aenter__(self) -> "NotionClient":
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def _call(self, label: str, request: Callable[[], Awaitable[Any]]) -> Any:
        """Run one API request under the request budget, translating errors."""
        self.budget.acquire(label)
        try:
            return await request()
        except ClipperError:
            raise
        except HTTPResponseError as e:
            raise error_from_status(e.status, str(e)) from e
        except RequestTimeoutError as e:
            raise NotionAPIError(f"{label} timed out") from e
        except httpx.HTTPStatusError as e:
            raise error_from_status(e.response.status_code, e.response.text) from e
        except httpx.HTTPError as e:
            raise NotionAPIError(f"{label} failed: {e}") from e

    # -- databases -----------------------------------------------------------

    async def list_databases(self) -> List[Dict]:
        """Databases shared with the integration, most recently edited first."""
        response = await self._call("search", lambda: self.client.search(
            filter={"value": "database", "property": "object"},
            sort={"direction": "descending", "timestamp": "last_edited_time"},
        ))
        databases = []
        for db in response.get("results", []):
            title = db.get("title") or []
            databases.append({
                "id": db["id"],
                "title": title[0].get("plain_text", "Untitled") if title else "Untitled",
                "icon": db.get("icon"),
            })
        logger.debug("Found {} databases", len(databases))
        return databases

    async def get_database_schema(self, database_id: str) -> Dict[str, str]:
        """Property name -> property type."""
        response = await self._call("databases.retrieve",
                                    lambda: self.client.databases.retrieve(database_id))
        return {name: prop.get("type") for name, prop in response.get("properties", {}).items()}

    # -- pages and blocks ----------------------------------------------------

    async def create_page(self, request: Dict) -> Dict:
        """Create a page from an assembled create request."""
        children = request.get("children", [])
        if len(children) > MAX_CHILDREN_PER_REQUEST:
            raise ValueError(f"Create request carries {len(children)} children (max {MAX_CHILDREN_PER_REQUEST})")

        try:
            page = await self._call("pages.create", lambda: self.client.pages.create(**request))
        except ClipperError as e:
            logger.error("Failed to create Notion page: {}", e)
            raise
        logger.info("Created Notion page: {}", page["id"])
        return page

    async def append_blocks(self, block_id: str, blocks: List[Dict]) -> int:
        """
        Append blocks to a page or block in sequential batches of 100.

        Batches are sent one after another so reading order is preserved.
        The first failing batch aborts the rest.

        Returns:
            Number of blocks appended

        Raises:
            WriteError: with the count already appended and the missing blocks
        """
        appended = 0
        for i in range(0, len(blocks), MAX_CHILDREN_PER_REQUEST):
            batch = blocks[i:i + MAX_CHILDREN_PER_REQUEST]
            try:
                await self._call("blocks.children.append",
                                 lambda: self.client.blocks.children.append(block_id, children=batch))
            except ClipperError as e:
                logger.error("Failed to append blocks after {}/{}: {}", appended, len(blocks), e)
                raise WriteError(block_id, appended, blocks[appended:], str(e)) from e
            appended += len(batch)
            logger.debug("Appended {} blocks to {}", len(batch), block_id)
        return appended

    async def list_children(self, block_id: str, start_cursor: Optional[str] = None,
                            page_size: int = MAX_CHILDREN_PER_REQUEST) -> Dict:
        """One page of a block's children."""
        kwargs = {"page_size": page_size}
        if start_cursor:
            kwargs["start_cursor"] = start_cursor
        return await self._call("blocks.children.list",
                                lambda: self.client.blocks.children.list(block_id, **kwargs))

    async def update_block(self, block_id: str, **payload) -> Dict:
        return await self._call("blocks.update", lambda: self.client.blocks.update(block_id, **payload))

    # -- file uploads --------------------------------------------------------

    def _headers(self, json_body: bool = True) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.api_token}",
            "Notion-Version": self.settings.notion_version,
        }
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def create_file_upload(self, filename: str, content_type: str) -> UploadSession:
        """Step 1: create a single-part file upload object."""
        async def request():
            response = await self.http.post(
                f"{API_BASE}/file_uploads",
                headers=self._headers(),
                json={"filename": filename, "content_type": content_type, "mode": "single_part"},
            )
            response.raise_for_status()
            return response.json()

        data = await self._call("file_uploads.create", request)
        logger.debug("File upload ID: {}", data["id"])
        return UploadSession(data["id"], filename, content_type, data.get("status", "pending"))

    async def send_file_upload(self, session: UploadSession, content: bytes) -> UploadSession:
        """Step 2: send the file contents against the session."""
        async def request():
            response = await self.http.post(
                f"{API_BASE}/file_uploads/{session.id}/send",
                headers=self._headers(json_body=False),
                files={"file": (session.filename, content, session.content_type)},
            )
            response.raise_for_status()
            return response.json()

        data = await self._call("file_uploads.send", request)
        session.status = data.get("status", session.status)
        return session

    async def retrieve_file_upload(self, session: UploadSession) -> UploadSession:
        async def request():
            response = await self.http.get(
                f"{API_BASE}/file_uploads/{session.id}",
                headers=self._headers(json_body=False),
            )
            response.raise_for_status()
            return response.json()

        data = await self._call("file_uploads.retrieve", request)
        session.status = data.get("status", session.status)
        return session

    async def upload_bytes(self, url: str, filename: str, content_type: str, content: bytes) -> str:
        """
        Run the two-step upload protocol and confirm the upload.

        Returns:
            The file upload id to reference from blocks

        Raises:
            UploadError: the session never reached ``uploaded``
        """
        session = await self.create_file_upload(filename, content_type)
        await self.send_file_upload(session, content)

        attempts = self.settings.upload_poll_attempts
        while not session.is_uploaded and attempts > 0:
            if session.status == "failed":
                break
            await asyncio.sleep(self.settings.upload_poll_interval)
            await self.retrieve_file_upload(session)
            attempts -= 1

        if not session.is_uploaded:
            last_status = session.status
            session.status = "failed"
            raise UploadError(url, f"Upload {session.id} not confirmed (status={last_status})")

        logger.debug("Uploaded {} as {}", filename, session.id)
        return session.id
