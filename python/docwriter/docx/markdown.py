"""
Renders markdown into a python-docx document.
mistune parses the markdown into an AST; the tokens are then walked into
paragraphs, runs and tables. Raw HTML is suppressed.
"""

from typing import Any, Dict, List, Optional

import mistune
import structlog
from docx.document import Document as DocumentObject
from docx.enum.text import WD_BREAK
from docx.oxml import parse_xml
from docx.oxml.ns import nsdecls
from docx.shared import Pt

logger = structlog.get_logger(__name__)

DEFAULT_PLUGINS = [
    "table",
    "strikethrough",
    "footnotes",
    "def_list",
    "insert",
    "superscript",
    "subscript",
    "url",
]

CODE_FONT = "Courier New"


class MarkdownRenderer:
    def __init__(self, doc: DocumentObject, plugins: Optional[List[str]] = None):
        self.doc = doc
        self.plugins = list(DEFAULT_PLUGINS if plugins is None else plugins)
        self._parse = mistune.create_markdown(renderer="ast", plugins=self.plugins)

    def parse(self, markdown_text: str) -> List[Dict[str, Any]]:
        return self._parse(markdown_text)

    def render(self, markdown_text: str) -> list:
        """
        Appends the rendered markdown to the end of the body.
        Returns the new block elements in document order.
        """
        body = self.doc.element.body
        existing = set(body.iterchildren())

        self.render_tokens(self.parse(markdown_text))

        created = [child for child in body.iterchildren() if child not in existing]
        logger.debug("Rendered markdown", blocks=len(created))
        return created

    def render_before(self, anchor, markdown_text: str) -> list:
        """Renders the markdown and moves the new blocks in front of the anchor element."""
        created = self.render(markdown_text)
        for element in created:
            anchor.addprevious(element)
        return created

    # -- block tokens --------------------------------------------------------

    def render_tokens(self, tokens: list):
        for tok in tokens:
            self._render_token(tok)

    def _render_token(self, tok: dict, list_level: int = 0):
        tp = tok.get("type", "")

        if tp == "heading":
            level = tok.get("attrs", {}).get("level", 1)
            p = self.doc.add_paragraph(style=self._style(f"Heading {min(level, 9)}"))
            self._add_inline(p, tok.get("children", []))

        elif tp == "paragraph":
            p = self.doc.add_paragraph()
            self._add_inline(p, tok.get("children", []))

        elif tp == "block_code":
            self._add_code_block(tok.get("raw", ""))

        elif tp == "block_quote":
            for child in tok.get("children", []):
                if child.get("type") == "paragraph":
                    p = self.doc.add_paragraph(style=self._style("Quote"))
                    self._add_inline(p, child.get("children", []))
                else:
                    self._render_token(child)

        elif tp == "list":
            self._add_list(tok, list_level)

        elif tp == "table":
            self._add_table(tok)

        elif tp == "thematic_break":
            self._add_horizontal_rule()

        elif tp in ("blank_line", "block_html"):
            pass

        else:
            # def_list, footnotes and friends: render whatever is below
            children = tok.get("children")
            if isinstance(children, list) and children:
                if all(c.get("type") in _INLINE_TYPES for c in children):
                    p = self.doc.add_paragraph()
                    self._add_inline(p, children)
                else:
                    for child in children:
                        self._render_token(child, list_level)
            elif tok.get("raw"):
                self.doc.add_paragraph(tok["raw"])

    def _add_list(self, tok: dict, level: int):
        ordered = tok.get("attrs", {}).get("ordered", False)
        base = "List Number" if ordered else "List Bullet"
        style_name = base if level == 0 else f"{base} {min(level + 1, 3)}"

        for item in tok.get("children", []):
            for child in item.get("children", []):
                tp = child.get("type", "")
                # mistune uses "block_text" for tight lists, "paragraph" for loose
                if tp in ("paragraph", "block_text"):
                    p = self.doc.add_paragraph(style=self._style(style_name) or self._style(base))
                    self._add_inline(p, child.get("children", []))
                elif tp == "list":
                    self._add_list(child, level + 1)
                else:
                    self._render_token(child, level)

    def _add_code_block(self, code: str):
        lines = code.rstrip("\n").split("\n")
        p = self.doc.add_paragraph(style=self._style("No Spacing"))
        for i, line in enumerate(lines):
            run = p.add_run(line)
            run.font.name = CODE_FONT
            run.font.size = Pt(9)
            if i < len(lines) - 1:
                run.add_break(WD_BREAK.LINE)

    def _add_horizontal_rule(self):
        p = self.doc.add_paragraph()
        pPr = p._element.get_or_add_pPr()
        pPr.append(
            parse_xml(
                f'<w:pBdr {nsdecls("w")}><w:bottom w:val="single" w:sz="6" w:space="1" w:color="auto"/></w:pBdr>'
            )
        )

    def _add_table(self, tok: dict):
        rows = []
        for section in tok.get("children", []):
            if section.get("type") == "table_head":
                rows.append(section.get("children", []))
            elif section.get("type") == "table_body":
                for row in section.get("children", []):
                    rows.append(row.get("children", []))

        if not rows:
            return

        cols = max(len(r) for r in rows)
        table = self.doc.add_table(rows=len(rows), cols=cols)
        grid = self._style("Table Grid")
        if grid is not None:
            table.style = grid

        for r_idx, cells in enumerate(rows):
            for c_idx, cell_tok in enumerate(cells):
                p = table.cell(r_idx, c_idx).paragraphs[0]
                style = {"bold": True} if cell_tok.get("attrs", {}).get("head") else {}
                self._add_inline(p, cell_tok.get("children", []), style)

    # -- inline tokens -------------------------------------------------------

    def _add_inline(self, paragraph, tokens, base_style: Optional[Dict[str, Any]] = None):
        """
        Recursively renders inline tokens. Nested formatting accumulates in the
        style dict, e.g. **_text_** becomes one bold italic run.
        """
        if base_style is None:
            base_style = {}

        for tok in tokens:
            tp = tok.get("type", "")
            children = tok.get("children", [])

            if tp == "text":
                self._add_run(paragraph, tok.get("raw", ""), base_style)
            elif tp == "softbreak":
                self._add_run(paragraph, " ", base_style)
            elif tp == "linebreak":
                paragraph.add_run().add_break(WD_BREAK.LINE)
            elif tp == "codespan":
                self._add_run(paragraph, tok.get("raw", ""), {**base_style, "code": True})
            elif tp in _STYLE_FLAGS:
                self._add_inline(paragraph, children, {**base_style, _STYLE_FLAGS[tp]: True})
            elif tp in ("link", "image"):
                # Link targets are dropped; the visible text stays
                self._add_inline(paragraph, children, base_style)
            elif tp == "inline_html":
                pass
            elif children:
                self._add_inline(paragraph, children, base_style)
            elif tok.get("raw"):
                self._add_run(paragraph, tok["raw"], base_style)

    def _add_run(self, paragraph, text: str, style: Dict[str, Any]):
        if not text:
            return
        run = paragraph.add_run(text)
        if style.get("bold"):
            run.bold = True
        if style.get("italic"):
            run.italic = True
        if style.get("strike"):
            run.font.strike = True
        if style.get("underline"):
            run.underline = True
        if style.get("superscript"):
            run.font.superscript = True
        if style.get("subscript"):
            run.font.subscript = True
        if style.get("code"):
            run.font.name = CODE_FONT

    def _style(self, name: str):
        """Returns the named style, or None when the document does not define it."""
        try:
            return self.doc.styles[name]
        except KeyError:
            logger.debug("Style not found in document", style=name)
            return None


_STYLE_FLAGS = {
    "strong": "bold",
    "emphasis": "italic",
    "strikethrough": "strike",
    "insert": "underline",
    "superscript": "superscript",
    "subscript": "subscript",
}

_INLINE_TYPES = {"text", "softbreak", "linebreak", "codespan", "link", "image", "inline_html", *_STYLE_FLAGS}


def render_markdown(doc: DocumentObject, markdown_text: str, anchor=None) -> list:
    """
    Renders markdown into the document, at the end of the body or in front of anchor.
    """
    renderer = MarkdownRenderer(doc)
    if anchor is None:
        return renderer.render(markdown_text)
    return renderer.render_before(anchor, markdown_text)
