"""
Table-of-contents generation.

A ToC is a w:sdt block (docPartGallery "Table of Contents") holding a heading
paragraph and a complex TOC field. The cached field result lists the headings
within the outline range of the \\o switch; page numbers are left to Word.
"""

import re
from typing import List, Optional, Tuple

import structlog
from docx.document import Document as DocumentObject
from docx.oxml.ns import qn
from docx.text.paragraph import Paragraph

from docwriter.utils.docx import (
    append_to_body,
    create_attribute,
    create_element,
    create_text_leaf,
    get_heading_level,
    iter_block_items,
    set_paragraph_style,
)

logger = structlog.get_logger(__name__)

TOC_GALLERY = "Table of Contents"
DEFAULT_HEADING_TEXT = "Table of Contents"
# For a guide to the switches see Microsoft's "Field codes: TOC field" documentation
DEFAULT_SWITCHES = 'TOC \\o "1-3" \\n 1-3 \\h \\z \\u'

_OUTLINE_RANGE = re.compile(r'\\o\s+"(\d+)-(\d+)"')


def parse_outline_range(switches: str) -> Tuple[int, int]:
    """Returns the heading levels covered by the \\o switch, (1, 3) if absent."""
    match = _OUTLINE_RANGE.search(switches or "")
    if not match:
        return 1, 3
    low, high = int(match.group(1)), int(match.group(2))
    if low > high:
        low, high = high, low
    return low, high


class TocGenerator:
    def __init__(self, doc: DocumentObject):
        self.doc = doc

    def find_toc(self):
        """Returns the first ToC sdt block of the body, or None."""
        found = self.doc.element.body.xpath(
            f'.//w:sdt[w:sdtPr/w:docPartObj/w:docPartGallery[@w:val="{TOC_GALLERY}"]]'
        )
        return found[0] if found else None

    def collect_headings(self, switches: str = DEFAULT_SWITCHES) -> List[Tuple[int, str]]:
        low, high = parse_outline_range(switches)
        headings = []
        for item in iter_block_items(self.doc):
            if not isinstance(item, Paragraph):
                continue
            level = get_heading_level(item)
            if level is not None and low <= level <= high and item.text.strip():
                headings.append((level, item.text))
        return headings

    def generate_toc(
        self,
        index: Optional[int] = None,
        heading_text: str = DEFAULT_HEADING_TEXT,
        switches: str = DEFAULT_SWITCHES,
        skip_page_numbering: bool = True,
    ):
        """
        Inserts a new ToC in front of the body block at index, or at the end of the
        body when index is None or past the last block. Returns the sdt element.
        """
        sdt = create_element("w:sdt")

        sdt_pr = create_element("w:sdtPr")
        doc_part_obj = create_element("w:docPartObj")
        gallery = create_element("w:docPartGallery")
        create_attribute(gallery, "w:val", TOC_GALLERY)
        doc_part_obj.append(gallery)
        doc_part_obj.append(create_element("w:docPartUnique"))
        sdt_pr.append(doc_part_obj)
        sdt.append(sdt_pr)

        content = create_element("w:sdtContent")
        if heading_text:
            content.append(self._heading_paragraph(heading_text))
        entries = self._fill_field(content, switches)
        sdt.append(content)

        blocks = [child for child in self.doc.element.body.iterchildren() if child.tag != qn("w:sectPr")]
        if index is None or index >= len(blocks):
            append_to_body(self.doc, sdt)
        else:
            blocks[max(index, 0)].addprevious(sdt)

        if not skip_page_numbering:
            self._request_field_update()

        logger.info("Inserted table of contents", index=index, entries=entries)
        return sdt

    def update_toc(self, skip_page_numbering: bool = True) -> bool:
        """
        Regenerates the entries of the existing ToC from the current headings.
        Returns False when the document has no ToC.
        """
        sdt = self.find_toc()
        if sdt is None:
            return False

        content = sdt.find(qn("w:sdtContent"))
        if content is None:
            content = create_element("w:sdtContent")
            sdt.append(content)

        instr = self._read_switches(content) or DEFAULT_SWITCHES

        children = list(content)
        keep_heading = bool(children) and children[0].tag == qn("w:p") and not list(children[0].iter(qn("w:fldChar")))
        for child in children[1:] if keep_heading else children:
            content.remove(child)

        entries = self._fill_field(content, instr)

        if not skip_page_numbering:
            self._request_field_update()

        logger.info("Updated table of contents", switches=instr, entries=entries)
        return True

    def _read_switches(self, content) -> str:
        """
        Returns the instruction of the outermost field, read between its begin and
        separate marks. Entries written by Word carry nested PAGEREF fields.
        """
        parts = []
        depth = 0
        for node in content.iter(qn("w:fldChar"), qn("w:instrText")):
            if node.tag == qn("w:instrText"):
                if depth == 1:
                    parts.append(node.text or "")
                continue

            kind = node.get(qn("w:fldCharType"))
            if kind == "begin":
                depth += 1
            elif kind == "separate" and depth == 1:
                break
            elif kind == "end":
                depth -= 1
                if depth <= 0:
                    break
        return "".join(parts).strip()

    def _fill_field(self, content, switches: str) -> int:
        begin = create_element("w:p")
        begin.append(self._fld_char_run("begin"))
        begin.append(self._instr_run(switches))
        begin.append(self._fld_char_run("separate"))
        content.append(begin)

        headings = self.collect_headings(switches)
        for level, text in headings:
            content.append(self._entry_paragraph(level, text))

        end = create_element("w:p")
        end.append(self._fld_char_run("end"))
        content.append(end)
        return len(headings)

    def _heading_paragraph(self, text: str):
        p = create_element("w:p")
        set_paragraph_style(self.doc, p, "TOC Heading", fallback="TOCHeading")
        p.append(self._text_run(text))
        return p

    def _entry_paragraph(self, level: int, text: str):
        p = create_element("w:p")
        set_paragraph_style(self.doc, p, f"toc {level}", fallback=f"TOC{level}")
        p.append(self._text_run(text))
        return p

    def _text_run(self, text: str):
        r = create_element("w:r")
        r.append(create_text_leaf(text))
        return r

    def _fld_char_run(self, kind: str):
        r = create_element("w:r")
        fld_char = create_element("w:fldChar")
        create_attribute(fld_char, "w:fldCharType", kind)
        r.append(fld_char)
        return r

    def _instr_run(self, switches: str):
        r = create_element("w:r")
        instr = create_element("w:instrText")
        create_attribute(instr, "xml:space", "preserve")
        instr.text = f" {switches} "
        r.append(instr)
        return r

    def _request_field_update(self):
        # Word recomputes fields (and page numbers) when the document is opened
        settings = self.doc.settings.element
        update = settings.find(qn("w:updateFields"))
        if update is None:
            update = create_element("w:updateFields")
            settings.append(update)
        create_attribute(update, "w:val", "true")
