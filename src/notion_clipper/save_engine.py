"""Save engine orchestrating article → Notion page."""

import asyncio
from dataclasses import replace
from typing import Dict, Optional

from loguru import logger

from notion_clipper.assembler import assemble_draft
from notion_clipper.blocks import ImageBlock, InlineImage
from notion_clipper.config import Settings
from notion_clipper.converter import MarkdownConverter
from notion_clipper.document import Article, AssetKind, DocumentDraft, SaveResult, SweepResult
from notion_clipper.errors import WriteError
from notion_clipper.media import AssetPipeline
from notion_clipper.normalizer import collect_image_urls
from notion_clipper.platforms.notion_client import NotionClient, page_url
from notion_clipper.properties import FieldMapping, build_properties, detect_field_mapping
from notion_clipper.reconcile import ReconciliationSweep
from notion_clipper.state import ClipState, State


class SaveEngine:
    """Orchestrate one save: normalize → resolve → compile → create → append."""

    def __init__(self, notion: NotionClient, settings: Optional[Settings] = None,
                 pipeline: Optional[AssetPipeline] = None,
                 converter: Optional[MarkdownConverter] = None,
                 state: Optional[State] = None):
        self.notion = notion
        self.settings = settings or Settings()
        self.pipeline = pipeline or AssetPipeline(notion, self.settings)
        self.converter = converter or MarkdownConverter()
        self.state = state
        logger.debug("SaveEngine initialized")

    async def save(self, article: Article, database_id: str,
                   field_mapping: Optional[Dict[str, FieldMapping]] = None,
                   should_download_images: Optional[bool] = None,
                   timeout: Optional[float] = None) -> SaveResult:
        """
        Save an article as a page in a database.

        A timeout aborts the attempt only; anything already created in Notion
        stays there.

        Args:
            article: Extracted article
            database_id: Target database
            field_mapping: Property name -> FieldMapping (detected from the schema when empty)
            should_download_images: Rehost images (defaults to settings.download_images)
            timeout: Seconds before the attempt is abandoned

        Returns:
            SaveResult with the page id and URL

        Raises:
            AuthError, RateLimitError, NotionAPIError: page could not be created
            WriteError: page created but some blocks are missing
            asyncio.TimeoutError: attempt exceeded ``timeout``
        """
        if should_download_images is None:
            should_download_images = self.settings.download_images
        coro = self._save(article, database_id, field_mapping, should_download_images)
        if timeout:
            return await asyncio.wait_for(coro, timeout)
        return await coro

    async def _save(self, article: Article, database_id: str,
                    field_mapping: Optional[Dict[str, FieldMapping]],
                    upload_enabled: bool) -> SaveResult:
        logger.info("Saving: {} → Notion ({})", article.title, database_id)

        if not field_mapping:
            schema = await self.notion.get_database_schema(database_id)
            field_mapping = detect_field_mapping(schema)
            logger.info("Using detected field mapping: {}", ", ".join(field_mapping) or "(none)")

        nodes = self.converter.normalizer.parse(article.content, base_url=article.url or None)
        nodes = [
            replace(node, alt=article.alt_for(node.url))
            if isinstance(node, InlineImage) and not node.alt else node
            for node in nodes
        ]

        urls = collect_image_urls(nodes)
        urls.extend(url for url in (article.main_image, article.favicon) if url)
        assets = await self.pipeline.resolve_assets(urls, upload_enabled=upload_enabled)

        blocks = self.converter.compile(nodes, assets)
        draft = DocumentDraft(
            properties=build_properties(article, field_mapping, assets),
            blocks=blocks,
            icon=assets.get(article.favicon) if article.favicon else None,
            cover=assets.get(article.main_image) if article.main_image else None,
        )
        request, overflow = assemble_draft(draft, parent={"database_id": database_id})

        page = await self.notion.create_page(request)
        url = page_url(page)

        if overflow:
            logger.info("Appending {} remaining blocks", len(overflow))
            try:
                await self.notion.append_blocks(page["id"], overflow)
            except WriteError as e:
                e.page_url = url
                raise

        images = [block for block in blocks if isinstance(block, ImageBlock)]
        uploaded = sum(1 for block in images if block.kind == AssetKind.UPLOADED)
        result = SaveResult(
            page_id=page["id"],
            url=url,
            block_count=len(blocks),
            uploaded_images=uploaded,
            external_images=len(images) - uploaded,
            dropped_blocks=len(self.converter.diagnostics),
        )

        if self.state is not None:
            self.state.record_clip(ClipState(article.url, page["id"], url, database_id))

        logger.info("✓ Saved {} blocks ({} images uploaded, {} external): {}",
                    result.block_count, result.uploaded_images, result.external_images, url)
        return result

    def needs_migration(self, result: SaveResult, should_download_images: Optional[bool] = None) -> bool:
        if should_download_images is None:
            should_download_images = self.settings.download_images
        return should_download_images and self.settings.migrate_images and result.external_images > 0

    async def migrate(self, page_id: str) -> SweepResult:
        """Run the reconciliation sweep over a page."""
        sweep = ReconciliationSweep(self.notion, self.pipeline)
        return await sweep.migrate_external_images(page_id)

    def schedule_migration(self, page_id: str) -> asyncio.Task:
        """Start the sweep in the background; the task result is a SweepResult."""
        logger.info("Scheduling image migration for {}", page_id)
        return asyncio.ensure_future(self.migrate(page_id))
