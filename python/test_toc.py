"""
Tests for docwriter.docx.toc: table of contents generation.
"""

from docx import Document
from docx.oxml import OxmlElement
from docx.oxml.ns import qn

from docwriter.docx.toc import DEFAULT_SWITCHES, TocGenerator, parse_outline_range


def _field_chars(sdt):
    return [fc.get(qn("w:fldCharType")) for fc in sdt.iter(qn("w:fldChar"))]


def test_parse_outline_range():
    assert parse_outline_range(DEFAULT_SWITCHES) == (1, 3)
    assert parse_outline_range('TOC \\o "2-4" \\h') == (2, 4)
    assert parse_outline_range('TOC \\o "5-2"') == (2, 5)
    assert parse_outline_range("TOC \\h") == (1, 3)
    assert parse_outline_range("") == (1, 3)


def test_generated_toc_structure():
    doc = Document()
    doc.add_heading("Intro", level=1)

    sdt = TocGenerator(doc).generate_toc()

    gallery = sdt.find(".//" + qn("w:docPartGallery"))
    assert gallery.get(qn("w:val")) == "Table of Contents"
    assert _field_chars(sdt) == ["begin", "separate", "end"]
    instr = sdt.find(".//" + qn("w:instrText"))
    assert instr.text.strip() == DEFAULT_SWITCHES
    assert [t.text for t in sdt.iter(qn("w:t"))] == ["Table of Contents", "Intro"]


def test_generate_at_index():
    doc = Document()
    doc.add_paragraph("first")
    doc.add_paragraph("second")

    sdt = TocGenerator(doc).generate_toc(index=1)

    blocks = list(doc.element.body.iterchildren())
    assert blocks.index(sdt) == 1
    assert blocks[-1].tag == qn("w:sectPr")


def test_generate_past_end_appends():
    doc = Document()
    doc.add_paragraph("only")

    sdt = TocGenerator(doc).generate_toc(index=10)

    blocks = list(doc.element.body.iterchildren())
    assert blocks[-2] is sdt


def test_outline_range_filters_headings():
    doc = Document()
    doc.add_heading("One", level=1)
    doc.add_heading("Two", level=2)
    doc.add_heading("Three", level=3)

    generator = TocGenerator(doc)

    assert generator.collect_headings('TOC \\o "2-3"') == [(2, "Two"), (3, "Three")]
    assert [t for _, t in generator.collect_headings()] == ["One", "Two", "Three"]


def test_outline_level_overrides_style():
    doc = Document()
    p = doc.add_paragraph("Custom heading")
    pPr = p._p.get_or_add_pPr()
    outline = pPr.makeelement(qn("w:outlineLvl"), {qn("w:val"): "1"})
    pPr.append(outline)

    assert TocGenerator(doc).collect_headings() == [(2, "Custom heading")]


def test_empty_headings_are_skipped():
    doc = Document()
    doc.add_heading("", level=1)
    doc.add_heading("Real", level=1)

    assert TocGenerator(doc).collect_headings() == [(1, "Real")]


def test_update_keeps_switches_and_heading():
    doc = Document()
    generator = TocGenerator(doc)
    generator.generate_toc(heading_text="Contents", switches='TOC \\o "1-1" \\h')
    doc.add_heading("Top", level=1)
    doc.add_heading("Sub", level=2)

    assert generator.update_toc() is True

    sdt = generator.find_toc()
    assert [t.text for t in sdt.iter(qn("w:t"))] == ["Contents", "Top"]
    assert _field_chars(sdt) == ["begin", "separate", "end"]
    assert sdt.find(".//" + qn("w:instrText")).text.strip() == 'TOC \\o "1-1" \\h'


def test_update_is_repeatable():
    doc = Document()
    generator = TocGenerator(doc)
    generator.generate_toc()
    doc.add_heading("A", level=1)

    generator.update_toc()
    generator.update_toc()

    sdt = generator.find_toc()
    assert [t.text for t in sdt.iter(qn("w:t"))] == ["Table of Contents", "A"]
    assert len(doc.element.body.findall(qn("w:sdt"))) == 1


def test_update_without_toc():
    doc = Document()

    assert TocGenerator(doc).find_toc() is None
    assert TocGenerator(doc).update_toc() is False


def test_toc_without_heading_text():
    doc = Document()
    doc.add_heading("A", level=1)

    sdt = TocGenerator(doc).generate_toc(heading_text="")

    assert [t.text for t in sdt.iter(qn("w:t"))] == ["A"]
    assert TocGenerator(doc).update_toc() is True
    assert [t.text for t in sdt.iter(qn("w:t"))] == ["A"]


def _append_pageref(paragraph, bookmark):
    for kind, instr in (("begin", None), (None, f" PAGEREF {bookmark} \\h "), ("separate", None), ("end", None)):
        r = OxmlElement("w:r")
        if kind:
            fld_char = OxmlElement("w:fldChar")
            fld_char.set(qn("w:fldCharType"), kind)
            r.append(fld_char)
        else:
            instr_text = OxmlElement("w:instrText")
            instr_text.text = instr
            r.append(instr_text)
        paragraph.append(r)


def test_update_ignores_nested_pageref_fields():
    doc = Document()
    doc.add_heading("Chapter", level=1)
    generator = TocGenerator(doc)
    sdt = generator.generate_toc()
    entries = [p for p in sdt.iter(qn("w:p")) if p.find(qn("w:r") + "/" + qn("w:t")) is not None]
    _append_pageref(entries[-1], "_Toc1")
    doc.add_heading("Appendix", level=1)

    assert generator.update_toc() is True

    sdt = generator.find_toc()
    assert [i.text.strip() for i in sdt.iter(qn("w:instrText"))] == [DEFAULT_SWITCHES]
    assert _field_chars(sdt) == ["begin", "separate", "end"]
    assert [t.text for t in sdt.iter(qn("w:t"))] == ["Table of Contents", "Chapter", "Appendix"]
