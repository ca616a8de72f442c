"""
Low-level utilities for reading and manipulating DOCX XML structures.
This is the narrow interface the rule engine uses to talk to python-docx:
node classification, child enumeration, leaf values and wrapper unwrapping.
"""

from typing import Any, Iterator, List, Optional, Union

import structlog
from docx.document import Document as DocumentObject
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.table import Table, _Cell
from docx.text.paragraph import Paragraph
from docx.text.run import Run
from lxml import etree

from docwriter.errors import InvalidArgumentError

logger = structlog.get_logger(__name__)

TEXT_TAG = qn("w:t")


def create_element(name: str):
    return OxmlElement(name)


def create_attribute(element, name: str, value: str):
    element.set(qn(name), value)


# --- Node model ---


def unwrap(node: Any) -> etree._Element:
    """
    Returns the lxml element behind a node.
    python-docx proxies (Document, Paragraph, Run, Table, _Cell, headers and footers)
    are wrappers around an element; classification must always look at the element.
    """
    if isinstance(node, etree._Element):
        return node
    element = getattr(node, "_element", None)
    if element is None:
        raise InvalidArgumentError(f"Unsupported node type: {type(node)}")
    return element


def is_document_root(node: Any) -> bool:
    return isinstance(node, DocumentObject)


def is_text_leaf(node: Any) -> bool:
    """True for <w:t> elements (or a proxy wrapping one)."""
    try:
        element = unwrap(node)
    except InvalidArgumentError:
        return False
    return element.tag == TEXT_TAG


def is_container(node: Any) -> bool:
    try:
        element = unwrap(node)
    except InvalidArgumentError:
        return False
    return element.tag != TEXT_TAG


def get_children(node: Any) -> List[etree._Element]:
    """
    Returns the element children of a container in document order.
    Comments and processing instructions are not nodes. Leaves have no children.
    """
    element = unwrap(node)
    if element.tag == TEXT_TAG:
        return []
    return list(element.iterchildren(etree.Element))


def get_text(leaf: Any) -> str:
    return unwrap(leaf).text or ""


def set_text(leaf: Any, text: str):
    element = unwrap(leaf)
    element.text = text
    if text.strip() != text:
        create_attribute(element, "xml:space", "preserve")


def create_text_leaf(text: str):
    t = create_element("w:t")
    set_text(t, text)
    return t


# --- Block iteration ---


def iter_document_parts(doc: DocumentObject):
    """
    Yields document parts in a linear order for processing:
    1. Unique Headers (Primary, First, Even)
    2. Main Body
    3. Unique Footers (Primary, First, Even)

    Handles 'Link to Previous' to avoid duplication.
    """

    def _iter_section_parts(section, part_type_attr):
        part = getattr(section, part_type_attr)
        if not part.is_linked_to_previous:
            yield part

        if section.different_first_page_header_footer:
            first = getattr(section, f"first_page_{part_type_attr}")
            if not first.is_linked_to_previous:
                yield first

        if doc.settings.odd_and_even_pages_header_footer:
            even = getattr(section, f"even_page_{part_type_attr}")
            if not even.is_linked_to_previous:
                yield even

    for section in doc.sections:
        yield from _iter_section_parts(section, "header")

    # The Document object itself acts as the body container
    yield doc

    for section in doc.sections:
        yield from _iter_section_parts(section, "footer")


def iter_block_items(parent) -> Iterator[Union[Paragraph, Table]]:
    """
    Yields Paragraph or Table objects in the order they appear in the XML.
    Supports Document, Header, Footer, and Cell objects.
    Recursion is left to the caller.
    """
    if isinstance(parent, DocumentObject):
        parent_elm = parent.element.body
    elif isinstance(parent, _Cell):
        parent_elm = parent._tc
    else:
        if hasattr(parent, "_element"):
            parent_elm = parent._element
        else:
            raise ValueError(f"Unsupported parent type for iteration: {type(parent)}")

    for child in parent_elm.iterchildren():
        if child.tag == qn("w:p"):
            yield Paragraph(child, parent)
        elif child.tag == qn("w:tbl"):
            yield Table(child, parent)


def append_to_body(doc: DocumentObject, element):
    """Appends a block element to the body, keeping the final w:sectPr last."""
    body = doc.element.body
    sect_pr = body.find(qn("w:sectPr"))
    if sect_pr is not None:
        sect_pr.addprevious(element)
    else:
        body.append(element)


def find_paragraph_by_text(doc: DocumentObject, text: str) -> Optional[Paragraph]:
    """
    Finds the first body paragraph whose whole text equals the given text.
    Placeholders for block content are expected alone in their own paragraph.
    """
    for item in iter_block_items(doc):
        if isinstance(item, Paragraph) and item.text == text:
            return item
    return None


# --- Headings ---


def get_heading_level(paragraph: Paragraph) -> Optional[int]:
    """
    Returns the 1-based heading level of a paragraph, or None for body text.
    Explicit outline level wins over the style name.
    """
    pPr = paragraph._p.pPr
    if pPr is not None:
        outline = pPr.find(qn("w:outlineLvl"))
        if outline is not None:
            try:
                lvl = int(outline.get(qn("w:val")))
            except (TypeError, ValueError):
                lvl = None
            # 0=Level 1, ..., 8=Level 9, 9=Body Text
            if lvl is not None and 0 <= lvl <= 8:
                return lvl + 1

    style = paragraph.style
    if style is None or not style.name:
        return None

    if style.name.startswith("Heading"):
        try:
            return int(style.name.replace("Heading", "").strip())
        except ValueError:
            return None

    return None


def get_paragraph_prefix(paragraph: Paragraph) -> str:
    """
    Returns the Markdown prefix for a paragraph based on its style.
    e.g. 'Heading 1' -> '# ', 'Heading 2' -> '## '
    """
    level = get_heading_level(paragraph)
    if level:
        return "#" * level + " "

    if paragraph.style is not None and paragraph.style.name == "Title":
        return "# "

    return ""


def resolve_style_id(doc: DocumentObject, style_name: str, fallback: Optional[str] = None) -> str:
    # Resolve Style Name to ID (e.g. "Heading 1" -> "Heading1")
    try:
        return doc.styles[style_name].style_id
    except (KeyError, ValueError):
        return fallback or style_name.replace(" ", "")


def set_paragraph_style(doc: DocumentObject, p_element, style_name: str, fallback: Optional[str] = None):
    existing_pPr = p_element.find(qn("w:pPr"))
    if existing_pPr is not None:
        p_element.remove(existing_pPr)
    pPr = create_element("w:pPr")
    pStyle = create_element("w:pStyle")
    create_attribute(pStyle, "w:val", resolve_style_id(doc, style_name, fallback))
    pPr.append(pStyle)
    p_element.insert(0, pPr)


# --- Normalization ---


def _are_runs_identical(r1: Run, r2: Run) -> bool:
    """
    Compares two runs to see if they have identical formatting properties.
    """
    rPr1 = r1._r.rPr
    rPr2 = r2._r.rPr

    xml1 = rPr1.xml if rPr1 is not None else ""
    xml2 = rPr2.xml if rPr2 is not None else ""

    return xml1 == xml2


def _has_special_content(run: Run) -> bool:
    """
    Checks if the run contains elements that are not simple text, which would be lost
    during text-only coalescing (e.g. w:fldChar, w:drawing).
    """
    SAFE_TAGS = {
        qn("w:t"),
        qn("w:tab"),
        qn("w:br"),
        qn("w:cr"),
        qn("w:rPr"),
    }

    for child in run._element:
        if child.tag not in SAFE_TAGS:
            return True
    return False


def _coalesce_runs_in_paragraph(paragraph: Paragraph) -> int:
    """
    Merges adjacent runs with identical formatting.
    Word splits text like ["$(na", "me)"] due to editing history; after merging, the
    placeholder is a run of sibling <w:t> leaves under a single <w:r>.
    """
    merged = 0
    i = 0
    while i < len(paragraph.runs) - 1:
        current_run = paragraph.runs[i]
        next_run = paragraph.runs[i + 1]

        if _has_special_content(current_run) or _has_special_content(next_run):
            i += 1
            continue

        # Only direct siblings; runs inside hyperlinks or track changes stay put
        if current_run._r.getnext() is not next_run._r:
            i += 1
            continue

        if _are_runs_identical(current_run, next_run):
            # Move content nodes to preserve w:br, w:tab, etc.
            for child in list(next_run._element):
                if child.tag == qn("w:rPr"):
                    continue
                current_run._element.append(child)

            paragraph._p.remove(next_run._r)
            merged += 1
            # Do NOT increment i; check the *new* next_run against current_run
        else:
            i += 1
    return merged


def _normalize_blocks(container) -> int:
    merged = 0
    for item in iter_block_items(container):
        if isinstance(item, Paragraph):
            merged += _coalesce_runs_in_paragraph(item)
        elif isinstance(item, Table):
            for row in item.rows:
                for cell in row.cells:
                    merged += _normalize_blocks(cell)
    return merged


def normalize_docx(doc: DocumentObject) -> int:
    """
    Prepares a document for placeholder replacement.
    1. Removes proof errors (spellcheck squiggles).
    2. Coalesces adjacent runs in headers, body, footers and tables.

    Returns the number of merged runs.
    """
    for proof_err in doc.element.xpath("//w:proofErr"):
        proof_err.getparent().remove(proof_err)

    merged = 0
    for part in iter_document_parts(doc):
        merged += _normalize_blocks(part)

    logger.info("Normalized DOCX structure", merged_runs=merged)
    return merged
