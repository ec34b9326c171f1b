"""Tests for the Notion database facade."""

from unittest.mock import Mock, call

import httpx
import pytest

from remarkable2notion.core.errors import RemoteApiError
from remarkable2notion.integrations.notion_sync import (
    FILE_UPLOAD_API_VERSION,
    MAX_TEXT_LENGTH,
    NotionDatabase,
    RemotePage,
    find_title_property,
    page_title,
    truncate_text,
)

SCHEMA = {
    "properties": {
        "Tags": {"type": "multi_select", "multi_select": {"options": []}},
        "Notebook": {"type": "title", "title": {}},
        "PDF Link": {"type": "url", "url": {}},
    }
}


def page(page_id, title, key="Notebook"):
    return {
        "id": page_id,
        "properties": {
            "Tags": {"type": "multi_select", "multi_select": []},
            key: {"type": "title", "title": [{"plain_text": title, "text": {"content": title}}]},
        },
    }


def http_response(status_code=200, json_body=None):
    response = Mock()
    response.status_code = status_code
    response.is_success = 200 <= status_code < 300
    response.text = 'body'
    response.json.return_value = json_body or {}
    return response


@pytest.fixture
def mock_notion_client():
    client = Mock()
    client.databases.retrieve.return_value = SCHEMA
    client.pages.create.return_value = {"id": "page-new"}
    client.blocks.children.list.return_value = {"results": [], "has_more": False}
    return client


@pytest.fixture
def http_client():
    return Mock()


@pytest.fixture
def notion(mock_notion_client, http_client):
    return NotionDatabase("secret-token", "db-123", client=mock_notion_client, http_client=http_client)


class TestPureHelpers:

    def test_truncation_boundary(self):
        assert truncate_text('a' * MAX_TEXT_LENGTH) == 'a' * MAX_TEXT_LENGTH
        assert truncate_text('a' * 1999 + 'bc') == 'a' * 1999 + 'b'
        assert truncate_text('short') == 'short'

    def test_title_property_found_by_type_not_name(self):
        assert find_title_property(SCHEMA["properties"]) == "Notebook"
        assert find_title_property({"Name": {"type": "rich_text"}}) is None

    def test_page_title_reads_first_run(self):
        assert page_title(page("p", "Journal", key="Whatever")["properties"]) == "Journal"
        assert page_title({"Name": {"type": "title", "title": []}}) is None


class TestFindPageByTitle:

    def test_structural_title_match(self, notion, mock_notion_client):
        mock_notion_client.databases.query.return_value = {
            "results": [page("p1", "Journal"), page("p2", "Meeting Notes", key="Renamed title")]
        }

        assert notion.find_page_by_title("Meeting Notes") == RemotePage(id="p2", title="Meeting Notes")
        assert mock_notion_client.databases.query.call_args.kwargs["page_size"] == 100

    def test_no_match(self, notion, mock_notion_client):
        mock_notion_client.databases.query.return_value = {"results": [page("p1", "Journal")]}

        assert notion.find_page_by_title("journal") is None

    def test_query_failure_degrades_to_not_found(self, notion, mock_notion_client):
        mock_notion_client.databases.query.side_effect = httpx.ConnectError("offline")

        assert notion.find_page_by_title("Journal") is None


class TestCreatePage:

    def test_properties_and_body(self, notion, mock_notion_client):
        result = notion.create_page(
            "Meeting Notes", "x" * 2001, ["work", "q3"],
            created_time="2023-11-14T22:13:20Z", modified_time="2023-11-15T08:00:00Z"
        )

        assert result == RemotePage(id="page-new", title="Meeting Notes")
        kwargs = mock_notion_client.pages.create.call_args.kwargs
        assert kwargs["parent"] == {"database_id": "db-123"}

        properties = kwargs["properties"]
        assert properties["Notebook"]["title"][0]["text"]["content"] == "Meeting Notes"
        assert properties["Tags"] == {"multi_select": [{"name": "work"}, {"name": "q3"}]}
        assert properties["Created"] == {"date": {"start": "2023-11-14T22:13:20Z"}}
        assert properties["Last Modified"] == {"date": {"start": "2023-11-15T08:00:00Z"}}

        children = kwargs["children"]
        assert children[0]["type"] == "heading_2"
        assert children[0]["heading_2"]["rich_text"][0]["text"]["content"] == "OCR Extracted Text"
        assert children[1]["paragraph"]["rich_text"][0]["text"]["content"] == "x" * 2000

    def test_optional_properties_omitted(self, notion, mock_notion_client):
        notion.create_page("Plain", "text", [])

        properties = mock_notion_client.pages.create.call_args.kwargs["properties"]
        assert set(properties) == {"Notebook"}

    def test_create_failure_raises(self, notion, mock_notion_client):
        mock_notion_client.pages.create.side_effect = httpx.ConnectError("offline")

        with pytest.raises(RemoteApiError):
            notion.create_page("Plain", "text", [])


class TestUpdatePage:

    def test_replaces_whole_body(self, notion, mock_notion_client):
        mock_notion_client.blocks.children.list.side_effect = [
            {"results": [{"id": "b1"}, {"id": "b2"}], "has_more": True, "next_cursor": "cur"},
            {"results": [{"id": "b3"}], "has_more": False},
        ]

        notion.update_page("page-1", "new text", ["work"])

        mock_notion_client.pages.update.assert_called_once_with(
            page_id="page-1", properties={"Tags": {"multi_select": [{"name": "work"}]}}
        )
        assert mock_notion_client.blocks.children.list.call_args_list == [
            call(block_id="page-1"), call(block_id="page-1", start_cursor="cur")
        ]
        assert mock_notion_client.blocks.delete.call_args_list == [
            call(block_id="b1"), call(block_id="b2"), call(block_id="b3")
        ]
        children = mock_notion_client.blocks.children.append.call_args.kwargs["children"]
        assert children[1]["paragraph"]["rich_text"][0]["text"]["content"] == "new text"

    def test_empty_tags_are_not_patched(self, notion, mock_notion_client):
        notion.update_page("page-1", "text", [])

        mock_notion_client.pages.update.assert_not_called()

    def test_tag_failure_does_not_stop_body_replacement(self, notion, mock_notion_client):
        mock_notion_client.pages.update.side_effect = httpx.ConnectError("offline")

        notion.update_page("page-1", "text", ["work"])

        mock_notion_client.blocks.children.append.assert_called_once()

    def test_block_replacement_failure_raises(self, notion, mock_notion_client):
        mock_notion_client.blocks.children.list.side_effect = httpx.ConnectError("offline")

        with pytest.raises(RemoteApiError):
            notion.update_page("page-1", "text", [])


class TestImages:

    def test_failed_image_is_left_out(self, notion, mock_notion_client, http_client, tmp_path):
        images = []
        for number in (1, 2, 3):
            path = tmp_path / f"page-{number}.png"
            path.write_bytes(b'png')
            images.append((number, path))

        http_client.post.side_effect = [
            http_response(json_body={"id": "up-1", "upload_url": "https://upload/1"}),
            http_response(),
            http_response(status_code=500),
            http_response(json_body={"id": "up-3", "upload_url": "https://upload/3"}),
            http_response(),
        ]

        attached = notion.add_uploaded_images("page-1", images)

        assert attached == 2
        children = mock_notion_client.blocks.children.append.call_args.kwargs["children"]
        assert [child["image"]["file_upload"]["id"] for child in children] == ["up-1", "up-3"]
        assert [child["image"]["caption"][0]["text"]["content"] for child in children] == ["Page 1", "Page 3"]

    def test_malformed_upload_slot_is_left_out(self, notion, mock_notion_client, http_client, tmp_path):
        images = []
        for number in (1, 2):
            path = tmp_path / f"page-{number}.png"
            path.write_bytes(b'png')
            images.append((number, path))

        not_json = http_response()
        not_json.json.side_effect = ValueError("Expecting value")
        http_client.post.side_effect = [
            not_json,
            http_response(json_body={"id": "up-2", "upload_url": "https://upload/2"}),
            http_response(),
        ]

        assert notion.add_uploaded_images("page-1", images) == 1
        children = mock_notion_client.blocks.children.append.call_args.kwargs["children"]
        assert [child["image"]["file_upload"]["id"] for child in children] == ["up-2"]

    def test_upload_uses_file_upload_api_version(self, notion, http_client, tmp_path):
        path = tmp_path / 'page-1.png'
        path.write_bytes(b'png')
        http_client.post.side_effect = [
            http_response(json_body={"id": "up-1", "upload_url": "https://upload/1"}),
            http_response(),
        ]

        assert notion.upload_file(path) == "up-1"

        create_call, send_call = http_client.post.call_args_list
        assert create_call.kwargs["headers"]["Notion-Version"] == FILE_UPLOAD_API_VERSION
        assert create_call.kwargs["json"] == {
            "mode": "single_part", "filename": "page-1.png", "content_type": "image/png"
        }
        assert send_call.args[0] == "https://upload/1"
        assert "file" in send_call.kwargs["files"]

    def test_no_images_no_calls(self, notion, mock_notion_client, http_client):
        assert notion.add_uploaded_images("page-1", []) == 0
        http_client.post.assert_not_called()
        mock_notion_client.blocks.children.append.assert_not_called()


class TestPdfReference:

    def test_drive_url(self, notion, mock_notion_client):
        notion.set_pdf_url("page-1", "https://drive.google.com/uc?export=view&id=f1")

        mock_notion_client.pages.update.assert_called_once_with(
            page_id="page-1", properties={"PDF Link": {"url": "https://drive.google.com/uc?export=view&id=f1"}}
        )

    def test_local_fallback(self, notion, mock_notion_client, tmp_path):
        pdf = tmp_path / 'Meeting Notes.pdf'
        pdf.write_bytes(b'%PDF')

        notion.attach_local_pdf("page-1", pdf)

        paragraph = mock_notion_client.blocks.children.append.call_args.kwargs["children"][0]
        assert paragraph["paragraph"]["rich_text"][0]["text"]["content"] == "📎 PDF: Meeting Notes.pdf"
        url = mock_notion_client.pages.update.call_args.kwargs["properties"]["PDF Link"]["url"]
        assert url.startswith("file://")
        assert url.endswith("Meeting%20Notes.pdf")


class TestSchema:

    def test_verify_connection_failure(self, notion, mock_notion_client):
        mock_notion_client.databases.retrieve.side_effect = httpx.ConnectError("offline")

        with pytest.raises(RemoteApiError):
            notion.verify_connection()

    def test_ensure_properties_only_warns(self, notion, mock_notion_client):
        mock_notion_client.databases.update.side_effect = httpx.ConnectError("offline")

        notion.ensure_database_properties()

        properties = mock_notion_client.databases.update.call_args.kwargs["properties"]
        assert set(properties) == {"PDF Link", "Tags", "Created", "Last Modified"}
