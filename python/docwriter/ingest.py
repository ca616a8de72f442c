import io
from pathlib import Path
from typing import Union

import structlog
from docx.document import Document as DocumentObject
from docx.table import Table
from docx.text.paragraph import Paragraph

from docwriter.utils.docx import get_paragraph_prefix, iter_block_items, iter_document_parts
from docwriter.writer import load_document

logger = structlog.get_logger(__name__)


def extract_text(doc: DocumentObject) -> str:
    """
    Extracts the plain text of a document: headers, body and footers.
    Headings get Markdown prefixes (#), table rows are joined with ' | '.
    """
    full_text = []

    for part in iter_document_parts(doc):
        part_text = _extract_blocks(part)
        if part_text:
            full_text.append(part_text)

    return "\n\n".join(full_text)


def extract_text_from_source(source: Union[str, Path, io.BytesIO]) -> str:
    return extract_text(load_document(source))


def _extract_blocks(container) -> str:
    """
    Recursively extracts text from a container (Document, Cell, Header, etc.)
    iterating over Paragraphs and Tables in order.
    """
    blocks = []

    for item in iter_block_items(container):
        if isinstance(item, Paragraph):
            blocks.append(get_paragraph_prefix(item) + item.text)

        elif isinstance(item, Table):
            table_text = _extract_table(item)
            if table_text:
                blocks.append(table_text)

    return "\n\n".join(blocks)


def _extract_table(table: Table) -> str:
    rows_text = []
    for row in table.rows:
        cell_texts = []
        # Merged cells are yielded once per grid column
        seen_cells = set()

        for cell in row.cells:
            if cell._tc in seen_cells:
                continue
            seen_cells.add(cell._tc)
            cell_texts.append(_extract_blocks(cell))

        rows_text.append(" | ".join(cell_texts))

    return "\n".join(rows_text)
