"""Component checks behind ``remarkable2notion test``."""

import logging
from pathlib import Path
from typing import List, Optional, Union

from ..core.notebook_scanner import Notebook
from ..core.remarkable_export import RemarkableExporter
from ..integrations.notion_sync import NotionDatabase, RemotePage
from ..processors.vision_ocr import ExtractionResult, VisionOCREngine

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 200
TEST_PAGE_TITLE = "Test Page"


def check_remarkable(exporter: RemarkableExporter) -> List[Notebook]:
    """Verify RemarkableSync and list every notebook it exports."""
    logger.info("Testing RemarkableSync...")
    exporter.check_installation()

    logger.info("Listing notebooks from reMarkable tablet...")
    logger.info("⚠️ Make sure your tablet is connected via USB!")
    notebooks = exporter.list_notebooks()

    for notebook in notebooks:
        logger.info(f"  - {notebook.name} (path: {notebook.path})")

    return notebooks


def check_ocr(ocr_engine: VisionOCREngine, pdf_path: Union[str, Path]) -> ExtractionResult:
    """OCR one PDF and log a short preview of the text."""
    logger.info("Testing Google Cloud Vision OCR...")
    result = ocr_engine.extract_text_and_images(pdf_path)

    logger.info(f"Extracted {len(result.text)} characters")
    logger.info(f"Preview: {result.text[:PREVIEW_LENGTH]}")

    for image_path in result.page_images:
        image_path.unlink(missing_ok=True)

    return result


def check_notion(notion: NotionDatabase) -> Optional[RemotePage]:
    """Verify the database connection and look for a page titled "Test Page"."""
    logger.info("Testing Notion API...")
    notion.verify_connection()
    logger.info("✓ Connection verified")

    page = notion.find_page_by_title(TEST_PAGE_TITLE)
    if page:
        logger.info(f"✓ Found existing test page: {page.id}")
    else:
        logger.warning("No test page found")
    return page
