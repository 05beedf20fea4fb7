"""
Plain-text extraction from Google Docs document structure.

Walks the ``body.content`` structural elements returned by the Docs API:
- paragraph: concatenated text runs, then a newline
- table: every cell's content followed by a tab, every row by a newline
- tableOfContents: its nested content
Other elements (section breaks, etc.) contribute nothing.
"""
import logging
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


def extract_text_from_content(content: List[Dict[str, Any]]) -> str:
    """
    Extract plain text from a list of structural elements.

    Args:
        content: ``body.content`` (or a table cell's / TOC's ``content``)

    Returns:
        The extracted text, untrimmed
    """
    parts: List[str] = []

    for element in content or []:
        if 'paragraph' in element:
            paragraph = element['paragraph'] or {}
            for elem in paragraph.get('elements') or []:
                text_run = elem.get('textRun') or {}
                if text_run.get('content'):
                    parts.append(text_run['content'])
            parts.append('\n')

        elif 'table' in element:
            table = element['table'] or {}
            for row in table.get('tableRows') or []:
                for cell in row.get('tableCells') or []:
                    if cell.get('content'):
                        parts.append(extract_text_from_content(cell['content']) + '\t')
                parts.append('\n')

        elif 'tableOfContents' in element:
            toc_content = (element['tableOfContents'] or {}).get('content')
            if toc_content:
                parts.append(extract_text_from_content(toc_content))

    return ''.join(parts)


def extract_document_text(document: Dict[str, Any]) -> str:
    """Extract and trim the text of a full Docs API document resource."""
    body = document.get('body') or {}
    return extract_text_from_content(body.get('content') or []).strip()
