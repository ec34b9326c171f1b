"""
Notion integration for reMarkable notebook export.

Wraps the Notion database that notebooks are synced into: finding a
notebook's page by title, creating or replacing its body, attaching page
images through Notion's file upload API and pointing the ``PDF Link``
property at the notebook PDF.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import httpx
from notion_client import Client
from notion_client.errors import HTTPResponseError, RequestTimeoutError

from ..core.errors import RemoteApiError

logger = logging.getLogger(__name__)

NOTION_API_BASE = "https://api.notion.com/v1"
# File uploads are only available on the newer API version
FILE_UPLOAD_API_VERSION = "2025-09-03"

MAX_TEXT_LENGTH = 2000
QUERY_PAGE_SIZE = 100
TEXT_HEADING = "OCR Extracted Text"

TAGS_PROPERTY = "Tags"
CREATED_PROPERTY = "Created"
MODIFIED_PROPERTY = "Last Modified"
PDF_LINK_PROPERTY = "PDF Link"

NOTION_ERRORS = (HTTPResponseError, RequestTimeoutError, httpx.HTTPError)


@dataclass
class RemotePage:
    """A page in the Notion database."""
    id: str
    title: str


def find_title_property(properties: Dict[str, Any]) -> Optional[str]:
    """
    Return the name of the first property whose type is ``title``.

    Works on both a database schema and a page's property values; the title
    property can be renamed per database so it is never looked up by name.
    """
    for name, value in (properties or {}).items():
        if isinstance(value, dict) and value.get("type") == "title":
            return name
    return None


def page_title(properties: Dict[str, Any]) -> Optional[str]:
    """Plain text of the first rich-text run of a page's title property."""
    key = find_title_property(properties)
    if key is None:
        return None

    runs = properties[key].get("title") or []
    if not runs:
        return None
    return runs[0].get("plain_text")


def truncate_text(text: str, limit: int = MAX_TEXT_LENGTH) -> str:
    """Notion rejects rich text over 2000 characters; the rest is dropped."""
    return text if len(text) <= limit else text[:limit]


def _rich_text(content: str) -> List[Dict[str, Any]]:
    return [{"type": "text", "text": {"content": content}}]


def paragraph_block(content: str) -> Dict[str, Any]:
    return {
        "object": "block",
        "type": "paragraph",
        "paragraph": {"rich_text": _rich_text(content)}
    }


def text_content_blocks(content: str) -> List[Dict[str, Any]]:
    """Heading plus the (truncated) OCR text as a single paragraph."""
    return [
        {
            "object": "block",
            "type": "heading_2",
            "heading_2": {"rich_text": _rich_text(TEXT_HEADING)}
        },
        paragraph_block(truncate_text(content)),
    ]


def image_block(file_upload_id: str, page_number: int) -> Dict[str, Any]:
    return {
        "object": "block",
        "type": "image",
        "image": {
            "type": "file_upload",
            "file_upload": {"id": file_upload_id},
            "caption": _rich_text(f"Page {page_number}")
        }
    }


def tags_property(tags: Iterable[str]) -> Dict[str, Any]:
    return {"multi_select": [{"name": tag} for tag in tags]}


def date_property(start: str) -> Dict[str, Any]:
    return {"date": {"start": start}}


def _api_error(action: str, error: Exception) -> RemoteApiError:
    status = getattr(error, "status", None)
    message = f"{action}: {status} - {error}" if status else f"{action}: {error}"
    return RemoteApiError(message, status_code=status, body=getattr(error, "body", None))


class NotionDatabase:
    """Syncs notebooks into a single Notion database."""

    def __init__(self, notion_token: str, database_id: str,
                 client: Optional[Client] = None,
                 http_client: Optional[httpx.Client] = None,
                 timeout: float = 60.0):
        """
        Initialize the Notion database client.

        Args:
            notion_token: Notion integration token
            database_id: ID of the database notebooks are synced into
            client: Optional preconfigured notion_client.Client
            http_client: Optional httpx client used for file uploads
            timeout: Request timeout for file uploads in seconds
        """
        self.notion_token = notion_token
        self.database_id = database_id
        self.client = client or Client(auth=notion_token)
        self.http = http_client or httpx.Client(timeout=timeout)

    # ---- schema ----

    def verify_connection(self) -> None:
        """Raise RemoteApiError unless the database can be retrieved."""
        logger.debug("Verifying Notion API connection")
        try:
            self.client.databases.retrieve(database_id=self.database_id)
        except NOTION_ERRORS as e:
            raise _api_error("Failed to verify Notion connection", e) from e
        logger.debug("Notion connection verified")

    def ensure_database_properties(self) -> None:
        """Add the properties the sync writes to; failures only warn."""
        logger.debug("Ensuring database has required properties")
        properties = {
            PDF_LINK_PROPERTY: {"url": {}},
            TAGS_PROPERTY: {"multi_select": {"options": []}},
            CREATED_PROPERTY: {"date": {}},
            MODIFIED_PROPERTY: {"date": {}},
        }
        try:
            self.client.databases.update(database_id=self.database_id, properties=properties)
        except NOTION_ERRORS as e:
            logger.warning(f"Failed to update database schema (may already exist): {e}")
            return
        logger.debug("Database properties ensured")

    def get_title_property_name(self) -> str:
        try:
            database = self.client.databases.retrieve(database_id=self.database_id)
        except NOTION_ERRORS as e:
            raise _api_error("Failed to get database schema", e) from e

        name = find_title_property(database.get("properties", {}))
        if name is None:
            raise RemoteApiError("No title property found in database")
        return name

    # ---- pages ----

    def find_page_by_title(self, title: str) -> Optional[RemotePage]:
        """
        Find a page whose title equals ``title``.

        Query failures are logged and reported as "not found" so the caller
        falls back to creating the page.
        """
        logger.debug(f"Searching for page with title: {title}")
        try:
            response = self.client.databases.query(database_id=self.database_id, page_size=QUERY_PAGE_SIZE)
        except NOTION_ERRORS as e:
            logger.warning(f"Query failed: {e}")
            return None

        for page in response.get("results", []):
            if page_title(page.get("properties", {})) == title:
                logger.debug(f"Found existing page with ID: {page['id']}")
                return RemotePage(id=page["id"], title=title)

        logger.debug("No existing page found")
        return None

    def create_page(self, title: str, content: str, tags: List[str],
                    created_time: Optional[str] = None,
                    modified_time: Optional[str] = None) -> RemotePage:
        """Create a database page with the OCR text as its body."""
        logger.debug(f"Creating Notion page: {title}")

        properties: Dict[str, Any] = {
            self.get_title_property_name(): {"title": [{"text": {"content": title}}]}
        }
        if tags:
            logger.debug(f"Adding {len(tags)} tags: {tags}")
            properties[TAGS_PROPERTY] = tags_property(tags)
        if created_time:
            properties[CREATED_PROPERTY] = date_property(created_time)
        if modified_time:
            properties[MODIFIED_PROPERTY] = date_property(modified_time)

        try:
            response = self.client.pages.create(
                parent={"database_id": self.database_id},
                properties=properties,
                children=text_content_blocks(content)
            )
        except NOTION_ERRORS as e:
            raise _api_error("Failed to create page", e) from e

        page_id = response.get("id")
        if not page_id:
            raise RemoteApiError("No page ID in response")

        logger.debug(f"Created page with ID: {page_id}")
        return RemotePage(id=page_id, title=title)

    def update_page(self, page_id: str, content: str, tags: List[str]) -> None:
        """
        Replace a page's tags (when given) and its whole body.

        The tag patch and the body replacement are separate requests; a failed
        tag patch is logged and the body is still replaced.
        """
        logger.debug(f"Updating Notion page: {page_id}")

        if tags:
            logger.debug(f"Updating {len(tags)} tags: {tags}")
            try:
                self.client.pages.update(page_id=page_id, properties={TAGS_PROPERTY: tags_property(tags)})
            except NOTION_ERRORS as e:
                logger.warning(f"Failed to update tags for {page_id}: {e}")

        try:
            for block_id in self.list_child_block_ids(page_id):
                self.client.blocks.delete(block_id=block_id)
            self.client.blocks.children.append(block_id=page_id, children=text_content_blocks(content))
        except NOTION_ERRORS as e:
            raise _api_error("Failed to update page", e) from e

        logger.debug("Page updated successfully")

    def list_child_block_ids(self, page_id: str) -> List[str]:
        block_ids = []
        cursor = None
        while True:
            kwargs = {"block_id": page_id}
            if cursor:
                kwargs["start_cursor"] = cursor
            response = self.client.blocks.children.list(**kwargs)
            block_ids.extend(block["id"] for block in response.get("results", []) if block.get("id"))
            if not response.get("has_more"):
                return block_ids
            cursor = response.get("next_cursor")

    # ---- PDF reference ----

    def set_pdf_url(self, page_id: str, pdf_url: str) -> None:
        try:
            self.client.pages.update(page_id=page_id, properties={PDF_LINK_PROPERTY: {"url": pdf_url}})
        except NOTION_ERRORS as e:
            raise _api_error("Failed to set PDF link", e) from e
        logger.debug(f"PDF Link property updated with URL: {pdf_url}")

    def set_pdf_link(self, page_id: str, pdf_path: Union[str, Path]) -> None:
        """Point ``PDF Link`` at a local file; only meaningful on this machine."""
        url = Path(pdf_path).resolve().as_uri()
        try:
            self.client.pages.update(page_id=page_id, properties={PDF_LINK_PROPERTY: {"url": url}})
        except NOTION_ERRORS as e:
            logger.debug(f"Failed to set PDF link (property may not exist): {e}")

    def add_pdf_text_reference(self, page_id: str, pdf_name: str) -> None:
        try:
            self.client.blocks.children.append(block_id=page_id, children=[paragraph_block(f"📎 PDF: {pdf_name}")])
        except NOTION_ERRORS as e:
            raise _api_error("Failed to add PDF reference", e) from e

    def attach_local_pdf(self, page_id: str, pdf_path: Union[str, Path]) -> None:
        """Fallback when Google Drive is not configured: name the file and link it locally."""
        pdf_path = Path(pdf_path)
        logger.debug(f"Adding PDF reference to page: {page_id}")
        self.add_pdf_text_reference(page_id, pdf_path.name or "notebook.pdf")
        self.set_pdf_link(page_id, pdf_path)

    # ---- images ----

    def add_uploaded_images(self, page_id: str, image_paths: List[Tuple[int, Path]]) -> int:
        """
        Upload page images into Notion storage and append them as image blocks.

        Args:
            page_id: Target page
            image_paths: (page number, image path) pairs

        Returns:
            Number of images attached. Images that fail to upload are skipped.
        """
        if not image_paths:
            return 0

        logger.debug(f"Uploading {len(image_paths)} images to Notion: {page_id}")

        children = []
        for page_number, image_path in image_paths:
            try:
                file_upload_id = self.upload_file(image_path)
            except (RemoteApiError, OSError) as e:
                logger.warning(f"Failed to upload image {page_number}: {e}")
                continue
            children.append(image_block(file_upload_id, page_number))

        if not children:
            return 0

        try:
            self.client.blocks.children.append(block_id=page_id, children=children)
        except NOTION_ERRORS as e:
            raise _api_error("Failed to add uploaded images", e) from e

        logger.debug(f"Added {len(children)} uploaded images to page")
        return len(children)

    def _upload_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.notion_token}",
            "Notion-Version": FILE_UPLOAD_API_VERSION,
        }

    def upload_file(self, file_path: Union[str, Path], content_type: str = "image/png") -> str:
        """
        Upload a file into Notion storage and return its file upload ID.

        Two steps: create a single-part upload slot, then send the bytes to the
        slot's ``upload_url``.
        """
        file_path = Path(file_path)
        filename = file_path.name or "image.png"
        logger.debug(f"Creating file upload for: {filename}")

        try:
            create_response = self.http.post(
                f"{NOTION_API_BASE}/file_uploads",
                headers=self._upload_headers(),
                json={"mode": "single_part", "filename": filename, "content_type": content_type}
            )
        except httpx.HTTPError as e:
            raise RemoteApiError(f"Failed to create file upload: {e}") from e

        if not create_response.is_success:
            raise RemoteApiError(
                f"Failed to create file upload: {create_response.status_code} - {create_response.text}",
                status_code=create_response.status_code, body=create_response.text
            )

        try:
            created = create_response.json()
        except ValueError as e:
            raise RemoteApiError(f"Invalid file upload response: {e}") from e

        file_upload_id = created.get("id")
        upload_url = created.get("upload_url")
        if not file_upload_id or not upload_url:
            raise RemoteApiError("No file ID or upload_url in create response")

        file_bytes = file_path.read_bytes()
        logger.debug(f"Uploading file data to: {upload_url}")

        try:
            upload_response = self.http.post(
                upload_url,
                headers=self._upload_headers(),
                files={"file": (filename, file_bytes, content_type)}
            )
        except httpx.HTTPError as e:
            raise RemoteApiError(f"Failed to upload file data: {e}") from e

        if not upload_response.is_success:
            raise RemoteApiError(
                f"Failed to upload file data: {upload_response.status_code} - {upload_response.text}",
                status_code=upload_response.status_code, body=upload_response.text
            )

        logger.debug(f"File uploaded successfully: {file_upload_id}")
        return file_upload_id
