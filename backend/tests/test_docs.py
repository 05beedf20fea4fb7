"""
Tests for Google Docs text extraction and the index-docs endpoint.
"""
import json
import time

import httpx
import jwt
import pytest
from unittest.mock import patch, MagicMock

from apps.docs.drive import DriveAPIError, fetch_indexed_documents
from apps.docs.extractor import extract_document_text, extract_text_from_content
from apps.rag.index import IndexedDocument


def _paragraph(*runs):
    return {"paragraph": {"elements": [{"textRun": {"content": r}} for r in runs]}}


def _response(json_body=None, status_error=None):
    response = MagicMock()
    response.json.return_value = json_body
    if status_error is not None:
        response.raise_for_status.side_effect = status_error
    else:
        response.raise_for_status = MagicMock()
    return response


def _status_error(status):
    response = MagicMock()
    response.status_code = status
    return httpx.HTTPStatusError("error", request=MagicMock(), response=response)


def _doc_body(*paragraphs):
    return {"body": {"content": [_paragraph(p) for p in paragraphs]}}


# ============================================================================
# Extractor Tests
# ============================================================================

class TestExtractor:
    """Tests for walking the Docs API structure."""

    def test_paragraphs(self):
        content = [_paragraph("Refund ", "policy"), _paragraph("30 days")]

        assert extract_text_from_content(content) == "Refund policy\n30 days\n"

    def test_table_cells_and_rows(self):
        content = [{
            "table": {
                "tableRows": [
                    {"tableCells": [{"content": [_paragraph("A")]}, {"content": [_paragraph("B")]}]},
                    {"tableCells": [{"content": [_paragraph("C")]}]},
                ]
            }
        }]

        assert extract_text_from_content(content) == "A\n\tB\n\t\nC\n\t\n"

    def test_table_of_contents(self):
        content = [{"tableOfContents": {"content": [_paragraph("Intro")]}}]

        assert extract_text_from_content(content) == "Intro\n"

    def test_other_elements_ignored(self):
        content = [{"sectionBreak": {}}, _paragraph("Text")]

        assert extract_text_from_content(content) == "Text\n"

    def test_document_text_trimmed(self):
        assert extract_document_text(_doc_body("  Hello  ", "")) == "Hello"

    def test_document_without_body(self):
        assert extract_document_text({}) == ""

    def test_null_structures(self):
        """Null paragraphs, tables and TOCs contribute nothing but their separators."""
        content = [
            {"paragraph": None},
            {"table": None},
            {"table": {"tableRows": [{"tableCells": None}]}},
            {"tableOfContents": None},
            _paragraph("Text"),
        ]

        assert extract_text_from_content(content) == "\n\nText\n"
        assert extract_document_text({"body": None}) == ""


# ============================================================================
# Drive Fetch Tests
# ============================================================================

class TestFetchIndexedDocuments:
    """Tests for listing and extracting the user's documents."""

    @patch('apps.docs.drive.httpx.Client')
    def test_fetch_skips_failures_and_empty_docs(self, mock_client_class):
        files = [
            {"id": "a", "name": "Policy", "modifiedTime": "2024-01-01T00:00:00Z",
             "webViewLink": "https://docs.google.com/document/d/a/edit"},
            {"id": "b", "name": "Broken"},
            {"id": "c", "name": "Empty"},
            {"name": "No id"},
        ]
        mock_client = MagicMock()
        mock_client.get.side_effect = [
            _response({"files": files}),
            _response(_doc_body("Refunds within 30 days.")),
            _response(status_error=_status_error(403)),
            _response(_doc_body("   ")),
        ]
        mock_client.__enter__ = MagicMock(return_value=mock_client)
        mock_client.__exit__ = MagicMock(return_value=False)
        mock_client_class.return_value = mock_client

        documents, skipped = fetch_indexed_documents("google-token")

        assert skipped == 3
        assert documents == [IndexedDocument(
            id="a",
            title="Policy",
            content="Refunds within 30 days.",
            url="https://docs.google.com/document/d/a/edit",
            last_modified="2024-01-01T00:00:00Z",
        )]
        assert mock_client_class.call_args[1]["headers"] == {"Authorization": "Bearer google-token"}

    @patch('apps.docs.drive.httpx.Client')
    def test_default_title_and_url(self, mock_client_class):
        mock_client = MagicMock()
        mock_client.get.side_effect = [
            _response({"files": [{"id": "z"}]}),
            _response(_doc_body("Body")),
        ]
        mock_client.__enter__ = MagicMock(return_value=mock_client)
        mock_client.__exit__ = MagicMock(return_value=False)
        mock_client_class.return_value = mock_client

        documents, _ = fetch_indexed_documents("t")

        assert documents[0].title == "Untitled Document"
        assert documents[0].url == "https://docs.google.com/document/d/z/edit"

    @patch('apps.docs.drive.httpx.Client')
    def test_list_failure(self, mock_client_class):
        mock_client = MagicMock()
        mock_client.get.return_value = _response(status_error=_status_error(401))
        mock_client.__enter__ = MagicMock(return_value=mock_client)
        mock_client.__exit__ = MagicMock(return_value=False)
        mock_client_class.return_value = mock_client

        with pytest.raises(DriveAPIError) as exc_info:
            fetch_indexed_documents("expired")

        assert exc_info.value.status_code == 401

    @patch('apps.docs.drive.httpx.Client')
    def test_malformed_document_skipped(self, mock_client_class):
        """A document with an unexpected structure is skipped; the others survive."""
        files = [{"id": "a", "name": "Bad"}, {"id": "b", "name": "Good"}]
        mock_client = MagicMock()
        mock_client.get.side_effect = [
            _response({"files": files}),
            _response({"body": {"content": [{"paragraph": {"elements": ["x"]}}]}}),
            _response(_doc_body("Refunds within 30 days.")),
        ]
        mock_client.__enter__ = MagicMock(return_value=mock_client)
        mock_client.__exit__ = MagicMock(return_value=False)
        mock_client_class.return_value = mock_client

        documents, skipped = fetch_indexed_documents("t")

        assert skipped == 1
        assert [d.id for d in documents] == ["b"]
        assert documents[0].content == "Refunds within 30 days."

    @patch('apps.docs.drive.httpx.Client')
    def test_null_paragraph_document_skipped_as_empty(self, mock_client_class):
        files = [{"id": "a", "name": "Blank"}, {"id": "b", "name": "Good"}]
        mock_client = MagicMock()
        mock_client.get.side_effect = [
            _response({"files": files}),
            _response({"body": {"content": [{"paragraph": None}]}}),
            _response(_doc_body("Body")),
        ]
        mock_client.__enter__ = MagicMock(return_value=mock_client)
        mock_client.__exit__ = MagicMock(return_value=False)
        mock_client_class.return_value = mock_client

        documents, skipped = fetch_indexed_documents("t")

        assert skipped == 1
        assert [d.id for d in documents] == ["b"]

    @patch('apps.docs.drive.httpx.Client')
    def test_list_invalid_json(self, mock_client_class):
        listing = _response()
        listing.json.side_effect = ValueError("Expecting value")
        mock_client = MagicMock()
        mock_client.get.return_value = listing
        mock_client.__enter__ = MagicMock(return_value=mock_client)
        mock_client.__exit__ = MagicMock(return_value=False)
        mock_client_class.return_value = mock_client

        with pytest.raises(DriveAPIError, match="Invalid response"):
            fetch_indexed_documents("t")

    @patch('apps.docs.drive.httpx.Client')
    def test_list_not_an_object(self, mock_client_class):
        mock_client = MagicMock()
        mock_client.get.return_value = _response(["not", "an", "object"])
        mock_client.__enter__ = MagicMock(return_value=mock_client)
        mock_client.__exit__ = MagicMock(return_value=False)
        mock_client_class.return_value = mock_client

        with pytest.raises(DriveAPIError):
            fetch_indexed_documents("t")


# ============================================================================
# Index Docs View Tests
# ============================================================================

SECRET = "docs-test-secret"


def _token(**claims):
    payload = {"sub": "user-1", "accessToken": "google-token", "exp": int(time.time()) + 600}
    payload.update(claims)
    return jwt.encode(payload, SECRET, algorithm="HS256")


@pytest.fixture
def session_settings(settings):
    settings.SESSION_SECRET = SECRET
    settings.SESSION_ALGORITHMS = ["HS256"]
    return settings


class TestIndexDocsView:
    """Tests for POST /api/index-docs."""

    @patch('apps.docs.views.fetch_indexed_documents')
    def test_returns_documents(self, mock_fetch, client, session_settings):
        mock_fetch.return_value = ([
            IndexedDocument(id="a", title="Policy", content="Refunds", url="u", last_modified="t"),
        ], 1)

        response = client.post("/api/index-docs", HTTP_AUTHORIZATION=f"Bearer {_token()}")

        assert response.status_code == 200
        assert json.loads(response.content) == {
            "documents": [{"id": "a", "title": "Policy", "content": "Refunds",
                           "url": "u", "lastModified": "t"}],
            "count": 1,
        }
        assert mock_fetch.call_args[0][0] == "google-token"

    @patch('apps.docs.views.fetch_indexed_documents')
    def test_missing_google_token(self, mock_fetch, client, session_settings):
        token = _token(accessToken=None)

        response = client.post("/api/index-docs", HTTP_AUTHORIZATION=f"Bearer {token}")

        assert response.status_code == 401
        mock_fetch.assert_not_called()

    @patch('apps.docs.views.fetch_indexed_documents')
    def test_google_rejects_token(self, mock_fetch, client, session_settings):
        mock_fetch.side_effect = DriveAPIError("Drive API error: 401", status_code=401)

        response = client.post("/api/index-docs", HTTP_AUTHORIZATION=f"Bearer {_token()}")

        assert response.status_code == 401

    @patch('apps.docs.views.fetch_indexed_documents')
    def test_drive_outage(self, mock_fetch, client, session_settings):
        mock_fetch.side_effect = DriveAPIError("Could not connect to Google Drive")

        response = client.post("/api/index-docs", HTTP_AUTHORIZATION=f"Bearer {_token()}")

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}

    def test_get_not_allowed(self, client, session_settings):
        response = client.get("/api/index-docs", HTTP_AUTHORIZATION=f"Bearer {_token()}")

        assert response.status_code == 405
