"""
Google Cloud Vision OCR engine for reMarkable Integration.

Renders each page of a notebook PDF to PNG with pdf2image (poppler's
pdftoppm) and sends every page image to the Vision ``images:annotate``
endpoint with DOCUMENT_TEXT_DETECTION, which handles handwriting well.

Image generation and OCR are decoupled: the page images are always returned
so they can be attached to Notion even when OCR fails for some pages.
"""

import base64
import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

import httpx
from PIL import Image
from pdf2image import convert_from_path
from pdf2image.exceptions import PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError

from ..core.errors import ExtractionError

logger = logging.getLogger(__name__)

VISION_API_URL = "https://vision.googleapis.com/v1/images:annotate"

NO_PAGES_TEXT = "(No pages found in PDF)"
NO_TEXT_DETECTED = "(No text detected)"


def page_banner(page_number: int) -> str:
    return f"\n\n--- Page {page_number} ---\n\n"


@dataclass
class ExtractionResult:
    """Extracted text plus the rendered page images (index 0 is page 1)."""
    text: str
    page_images: List[Path] = field(default_factory=list)


class VisionOCREngine:
    """OCR engine backed by the Google Cloud Vision REST API."""

    def __init__(
        self,
        api_key: str,
        image_dir: Optional[Union[str, Path]] = None,
        dpi: int = 150,
        timeout: float = 60.0,
        http_client: Optional[httpx.Client] = None
    ):
        """
        Initialize the Vision OCR engine.

        Args:
            api_key: Google Cloud Vision API key
            image_dir: Directory for rendered page images (default: system temp dir)
            dpi: Rasterization resolution
            timeout: Per-request timeout in seconds
            http_client: Optional preconfigured httpx client
        """
        self.api_key = api_key
        self.image_dir = Path(image_dir) if image_dir else Path(tempfile.gettempdir())
        self.dpi = dpi
        self.client = http_client or httpx.Client(timeout=timeout)

    def extract_text_and_images(self, pdf_path: Union[str, Path]) -> ExtractionResult:
        """
        Extract text from every page of a PDF and keep the page images.

        A failing page is logged and skipped; rasterization failure raises
        ExtractionError.
        """
        pdf_path = Path(pdf_path)
        logger.debug(f"Extracting text using Google Cloud Vision: {pdf_path}")

        page_images = self.render_pages(pdf_path)
        if not page_images:
            return ExtractionResult(text=NO_PAGES_TEXT, page_images=[])

        logger.debug(f"Processing {len(page_images)} pages with Google Cloud Vision")

        full_text = ""
        for page_number, image_path in enumerate(page_images, 1):
            logger.debug(f"Processing page {page_number} of {len(page_images)}")

            try:
                text = self.extract_text_from_image(image_path)
            except ExtractionError as e:
                logger.warning(f"Failed to process page {page_number}: {e}")
                continue

            if not text.strip():
                continue
            if full_text:
                full_text += page_banner(page_number)
            full_text += text

        if not full_text.strip():
            logger.warning("No text extracted from PDF")
            full_text = NO_TEXT_DETECTED
        else:
            logger.debug(f"Extracted {len(full_text)} characters using Google Cloud Vision")

        return ExtractionResult(text=full_text, page_images=page_images)

    def render_pages(self, pdf_path: Path) -> List[Path]:
        """Rasterize every PDF page to ``<image_dir>/<stem>_page-<n>.png``."""
        logger.debug("Converting PDF to images using pdftoppm")
        self.image_dir.mkdir(parents=True, exist_ok=True)

        try:
            images: List[Image.Image] = convert_from_path(str(pdf_path), dpi=self.dpi)
        except (PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError, OSError) as e:
            raise ExtractionError(f"PDF to image conversion failed for {pdf_path.name}: {e}") from e

        page_images = []
        try:
            for page_number, image in enumerate(images, 1):
                image_path = self.image_dir / f"{pdf_path.stem}_page-{page_number}.png"
                image.save(image_path, 'PNG')
                page_images.append(image_path)
        except OSError as e:
            for written in page_images:
                written.unlink(missing_ok=True)
            raise ExtractionError(f"Failed to write page image for {pdf_path.name}: {e}") from e

        logger.debug(f"Extracted {len(page_images)} page images")
        return page_images

    def extract_text_from_image(self, image_path: Union[str, Path]) -> str:
        """Run DOCUMENT_TEXT_DETECTION on one image and return the full text."""
        try:
            image_bytes = Path(image_path).read_bytes()
        except OSError as e:
            raise ExtractionError(f"Could not read page image {image_path}: {e}") from e

        request_body = {
            "requests": [{
                "image": {"content": base64.b64encode(image_bytes).decode('ascii')},
                "features": [{"type": "DOCUMENT_TEXT_DETECTION"}]
            }]
        }

        try:
            response = self.client.post(VISION_API_URL, params={"key": self.api_key}, json=request_body)
        except httpx.HTTPError as e:
            raise ExtractionError(f"Google Vision request failed: {e}") from e

        if not response.is_success:
            raise ExtractionError(f"Google Vision API failed: {response.status_code} - {response.text}")

        try:
            result = response.json()
        except ValueError as e:
            raise ExtractionError(f"Invalid Google Vision response: {e}") from e

        responses = result.get("responses") or []
        if not responses:
            return ""

        first = responses[0]
        if "error" in first:
            error = first["error"]
            message = error.get("message", error) if isinstance(error, dict) else error
            raise ExtractionError(f"Google Vision API error: {message}")

        return (first.get("fullTextAnnotation") or {}).get("text", "")
