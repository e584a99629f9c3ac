"""Post-creation sweep that rehosts still-external images."""

from collections import deque
from typing import Dict

from loguru import logger

from notion_clipper.document import SweepResult
from notion_clipper.errors import AuthError, ClipperError, RateLimitError

PAGE_SIZE = 100


def is_external_image(block: Dict) -> bool:
    return block.get("type") == "image" and block.get("image", {}).get("type") == "external"


class ReconciliationSweep:
    """Walk a page's block tree and migrate external images to uploads."""

    def __init__(self, notion, pipeline):
        self.notion = notion
        self.pipeline = pipeline

    async def migrate_external_images(self, root_id: str) -> SweepResult:
        """
        Breadth-first sweep from ``root_id``.

        Block ids to visit are kept in an explicit queue. A failing image or
        listing is counted and skipped; rate-limit and auth errors end the sweep
        early. Never raises.

        Returns:
            SweepResult with processed/migrated/failed counts
        """
        result = SweepResult()
        queue = deque([root_id])

        while queue:
            parent_id = queue.popleft()
            cursor = None
            while True:
                try:
                    page = await self.notion.list_children(parent_id, start_cursor=cursor, page_size=PAGE_SIZE)
                except (RateLimitError, AuthError) as e:
                    logger.warning("Stopping image sweep: {}", e.message)
                    result.stopped_early = True
                    return result
                except ClipperError as e:
                    logger.warning("Could not list children of {}: {}", parent_id, e.message)
                    result.failed += 1
                    break

                for block in page.get("results", []):
                    result.visited += 1
                    if block.get("has_children"):
                        queue.append(block["id"])
                    if is_external_image(block):
                        result.processed += 1
                        try:
                            await self._migrate(block)
                            result.migrated += 1
                        except (RateLimitError, AuthError) as e:
                            logger.warning("Stopping image sweep: {}", e.message)
                            result.failed += 1
                            result.stopped_early = True
                            return result
                        except ClipperError as e:
                            logger.warning("Could not migrate image block {}: {}", block["id"], e.message)
                            result.failed += 1

                if not page.get("has_more"):
                    break
                cursor = page.get("next_cursor")

        logger.info("Image sweep done: processed={}, migrated={}, failed={}",
                    result.processed, result.migrated, result.failed)
        return result

    async def _migrate(self, block: Dict):
        image = block["image"]
        url = image["external"]["url"]
        file_upload_id = await self.pipeline.rehost(url)
        await self.notion.update_block(block["id"], image={
            "type": "file_upload",
            "file_upload": {"id": file_upload_id},
            "caption": image.get("caption", []),
        })
        logger.debug("Migrated image block {} to upload {}", block["id"], file_upload_id)
