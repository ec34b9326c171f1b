"""
Sync engine: pushes every exported reMarkable notebook into Notion.

For each notebook, in enumeration order::

    copy PDF -> OCR -> [Drive upload] -> find page -> create | update
             -> attach images -> attach PDF reference -> cleanup

Notebooks are isolated from each other. Any exception raised while processing
one notebook is logged and counted, and the loop moves on to the next one.
Only the pre-flight checks in ``verify_prerequisites`` can stop a run.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Union

from .errors import RemoteApiError
from .notebook_scanner import Notebook
from .remarkable_export import RemarkableExporter

if TYPE_CHECKING:
    from ..integrations.google_drive import GoogleDriveClient
    from ..integrations.notion_sync import NotionDatabase, RemotePage
    from ..processors.vision_ocr import VisionOCREngine
    from ..utils.config import Config

logger = logging.getLogger(__name__)


class SyncStatus(Enum):
    """Outcome of processing one notebook."""
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class NotebookSyncResult:
    """Result of processing a single notebook."""
    notebook_name: str
    status: SyncStatus
    page_id: Optional[str] = None
    created: bool = False
    images_attached: int = 0
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status != SyncStatus.FAILED


@dataclass
class SyncSummary:
    """Tally of a whole run."""
    results: List[NotebookSyncResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def failed(self) -> int:
        return sum(1 for result in self.results if not result.success)

    @property
    def total(self) -> int:
        return len(self.results)

    def __str__(self) -> str:
        return f"Complete: {self.succeeded} succeeded, {self.failed} failed"


class SyncEngine:
    """Upserts exported notebooks into a Notion database, one at a time."""

    def __init__(self, exporter: RemarkableExporter, ocr_engine: 'VisionOCREngine',
                 notion: 'NotionDatabase', temp_dir: Union[str, Path],
                 drive: Optional['GoogleDriveClient'] = None,
                 dry_run: bool = False):
        """
        Initialize the sync engine.

        Args:
            exporter: RemarkableSync wrapper that produces and enumerates notebooks
            ocr_engine: Rasterizes PDFs and extracts their text
            notion: Destination database
            temp_dir: Working directory for PDF copies and page images
            drive: Optional Google Drive client; without it PDFs are linked locally
            dry_run: Enumerate notebooks but perform no per-notebook side effects
        """
        self.exporter = exporter
        self.ocr_engine = ocr_engine
        self.notion = notion
        self.temp_dir = Path(temp_dir)
        self.drive = drive
        self.dry_run = dry_run

    @classmethod
    def from_config(cls, config: 'Config') -> 'SyncEngine':
        """
        Build a fully wired engine from configuration.

        Raises:
            ConfigError: A required credential is missing
            AuthError: Google Drive is configured but no usable token could be obtained
        """
        from ..integrations.google_drive import GoogleDriveClient
        from ..integrations.google_oauth import GoogleOAuthClient
        from ..integrations.notion_sync import NotionDatabase
        from ..processors.vision_ocr import VisionOCREngine

        notion_token = config.require('notion.token', "Set NOTION_TOKEN or pass --notion-token.")
        database_id = config.require('notion.database_id', "Set NOTION_DATABASE_ID or pass --notion-database-id.")
        vision_api_key = config.require(
            'google.vision_api_key',
            "Google Cloud Vision API key is required. Set GOOGLE_VISION_API_KEY in .env file."
        )

        temp_dir = config.temp_directory
        temp_dir.mkdir(parents=True, exist_ok=True)

        exporter = RemarkableExporter(
            config.backup_directory,
            password=config.get_secret('remarkable.password'),
            executable=config.get('remarkable.executable', 'RemarkableSync'),
        )
        logger.debug("Using Google Cloud Vision for OCR")
        ocr_engine = VisionOCREngine(vision_api_key, image_dir=temp_dir,
                                     dpi=config.get('processing.dpi', 150))

        drive = None
        if config.drive_enabled:
            logger.debug("Google Drive integration enabled")
            oauth_client = GoogleOAuthClient(
                config.get('google.oauth_client_id'),
                config.get_secret('google.oauth_client_secret'),
                token_file=config.get('google.token_file'),
            )
            drive = GoogleDriveClient(oauth_client, folder_id=config.get('google.drive_folder_id'))
        else:
            logger.warning("Google Drive not configured - PDFs will be linked locally")

        return cls(
            exporter=exporter,
            ocr_engine=ocr_engine,
            notion=NotionDatabase(notion_token, database_id),
            temp_dir=temp_dir,
            drive=drive,
            dry_run=config.dry_run,
        )

    def verify_prerequisites(self) -> None:
        """Raise unless the export tool runs and the Notion database is reachable."""
        logger.debug("Verifying prerequisites...")
        self.exporter.check_installation()
        self.notion.verify_connection()
        self.notion.ensure_database_properties()
        logger.debug("All prerequisites verified")

    def sync(self, notebooks: Optional[List[Notebook]] = None) -> SyncSummary:
        """
        Sync every notebook and return the tally.

        Args:
            notebooks: Notebooks to process (default: run the export and enumerate)
        """
        if notebooks is None:
            notebooks = self.exporter.list_notebooks()

        summary = SyncSummary()
        if not notebooks:
            logger.warning("No notebooks found")
            return summary

        if self.dry_run:
            logger.info("🔍 DRY RUN - no changes will be made")
        logger.info(f"Syncing {len(notebooks)} notebooks")

        for index, notebook in enumerate(notebooks, 1):
            logger.debug(f"Processing {index}/{len(notebooks)}: {notebook.name}")

            try:
                result = self.process_notebook(notebook)
            except Exception as e:
                # One notebook never takes the rest of the run down with it
                result = NotebookSyncResult(notebook.name, SyncStatus.FAILED, error_message=str(e))
                logger.error(f"✗ {notebook.name} - {e}")
                logger.debug("Notebook failure details", exc_info=True)
            else:
                logger.info(f"✓ {notebook.name}")

            summary.results.append(result)

        logger.info(str(summary))
        return summary

    def process_notebook(self, notebook: Notebook) -> NotebookSyncResult:
        """Run the full upsert for one notebook; any exception fails only this notebook."""
        if self.dry_run:
            logger.debug(f"[DRY RUN] Would process: {notebook.name}")
            return NotebookSyncResult(notebook.name, SyncStatus.SKIPPED)

        if notebook.is_deleted:
            logger.debug(f"{notebook.name} is in the reMarkable trash")

        pdf_path = self.exporter.copy_notebook_pdf(notebook, self.temp_dir)
        page_images: List[Path] = []
        try:
            extraction = self.ocr_engine.extract_text_and_images(pdf_path)
            page_images = extraction.page_images

            pdf_url = None
            if self.drive is not None:
                pdf_url = self.drive.upload_pdf(pdf_path, notebook.name)

            page, created = self._upsert_page(notebook, extraction.text)
            images_attached = self._attach_images(page.id, page_images)
            self._attach_pdf_reference(page.id, pdf_path, pdf_url)
        except Exception:
            self._remove_images(page_images)
            # Keep the original error; the PDF copy may already be gone
            try:
                pdf_path.unlink(missing_ok=True)
            except OSError as e:
                logger.debug(f"Could not remove {pdf_path}: {e}")
            raise

        self._remove_images(page_images)
        pdf_path.unlink()

        return NotebookSyncResult(
            notebook.name,
            SyncStatus.SUCCESS,
            page_id=page.id,
            created=created,
            images_attached=images_attached,
        )

    def _upsert_page(self, notebook: Notebook, text: str):
        existing_page: Optional['RemotePage'] = self.notion.find_page_by_title(notebook.name)

        if existing_page is not None:
            logger.debug(f"Updating existing page: {notebook.name}")
            self.notion.update_page(existing_page.id, text, notebook.tags)
            return existing_page, False

        logger.debug(f"Creating new page: {notebook.name}")
        page = self.notion.create_page(
            notebook.name, text, notebook.tags,
            created_time=notebook.created_time,
            modified_time=notebook.modified_time,
        )
        return page, True

    def _attach_images(self, page_id: str, page_images: List[Path]) -> int:
        if not page_images:
            return 0

        numbered = list(enumerate(page_images, 1))
        try:
            return self.notion.add_uploaded_images(page_id, numbered)
        except RemoteApiError as e:
            logger.warning(f"⚠️ Failed to attach page images: {e}")
            return 0

    def _attach_pdf_reference(self, page_id: str, pdf_path: Path, pdf_url: Optional[str]) -> None:
        try:
            if pdf_url:
                self.notion.set_pdf_url(page_id, pdf_url)
            else:
                self.notion.attach_local_pdf(page_id, pdf_path)
        except RemoteApiError as e:
            logger.warning(f"⚠️ Failed to attach PDF reference: {e}")

    @staticmethod
    def _remove_images(page_images: List[Path]) -> None:
        for image_path in page_images:
            try:
                image_path.unlink()
            except OSError as e:
                logger.debug(f"Could not remove {image_path}: {e}")
