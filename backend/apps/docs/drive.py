"""
Google Drive / Docs REST access.

Lists the user's Google Docs and extracts their text so the client can
send them along with chat requests. Uses the user's own OAuth access
token from the session.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

import httpx

from apps.docs.extractor import extract_document_text
from apps.rag.index import IndexedDocument

logger = logging.getLogger(__name__)

DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"
DOCS_DOCUMENTS_URL = "https://docs.googleapis.com/v1/documents"

GOOGLE_DOC_QUERY = "mimeType='application/vnd.google-apps.document' and trashed=false"
DRIVE_PAGE_SIZE = 100


class DriveAPIError(Exception):
    """Raised when listing the user's documents fails."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


def list_google_docs(client: httpx.Client) -> List[Dict[str, Any]]:
    """
    List (up to one page of) the user's Google Docs.

    Raises:
        DriveAPIError: If the Drive API call fails
    """
    try:
        response = client.get(
            DRIVE_FILES_URL,
            params={
                "q": GOOGLE_DOC_QUERY,
                "fields": "files(id,name,modifiedTime,webViewLink)",
                "pageSize": DRIVE_PAGE_SIZE,
            },
        )
        response.raise_for_status()
        files = response.json().get("files")
    except httpx.HTTPStatusError as e:
        logger.error(f"Drive list failed: {e.response.status_code}")
        raise DriveAPIError(
            f"Drive API error: {e.response.status_code}",
            status_code=e.response.status_code,
        )
    except httpx.RequestError as e:
        logger.error(f"Drive connection error: {e}")
        raise DriveAPIError("Could not connect to Google Drive")
    except (ValueError, AttributeError) as e:
        logger.error(f"Unexpected Drive list response: {e}")
        raise DriveAPIError("Invalid response from Google Drive")

    return [f for f in files or [] if isinstance(f, dict)]


def fetch_document(client: httpx.Client, file: Dict[str, Any]) -> IndexedDocument:
    """
    Fetch one document and convert it to an IndexedDocument.

    Raises:
        httpx.HTTPError: If the Docs API call fails
    """
    doc_id = file["id"]
    response = client.get(f"{DOCS_DOCUMENTS_URL}/{doc_id}")
    response.raise_for_status()
    content = extract_document_text(response.json())

    return IndexedDocument(
        id=doc_id,
        title=file.get("name") or "Untitled Document",
        content=content,
        url=file.get("webViewLink") or f"https://docs.google.com/document/d/{doc_id}/edit",
        last_modified=file.get("modifiedTime") or datetime.now(timezone.utc).isoformat(),
    )


def fetch_indexed_documents(access_token: str, timeout: float = 30.0) -> Tuple[List[IndexedDocument], int]:
    """
    Extract the text of every Google Doc the user can see.

    Empty documents are skipped. A document that fails to load is logged
    and skipped; the rest are still returned.

    Returns:
        (documents, skipped_count)

    Raises:
        DriveAPIError: If the document list itself cannot be fetched
    """
    headers = {"Authorization": f"Bearer {access_token}"}
    documents: List[IndexedDocument] = []
    skipped = 0

    with httpx.Client(timeout=float(timeout), headers=headers) as client:
        files = list_google_docs(client)
        logger.info(f"Found {len(files)} Google Docs")

        for file in files:
            if not file.get("id"):
                skipped += 1
                continue
            try:
                document = fetch_document(client, file)
            except (httpx.HTTPError, ValueError, AttributeError, TypeError) as e:
                # Continue with other documents
                logger.warning(f"Error processing document {file.get('id')}: {e}")
                skipped += 1
                continue

            if not document.content:
                skipped += 1
                continue

            documents.append(document)

    logger.info(f"Extracted {len(documents)} documents, skipped {skipped}")
    return documents, skipped
