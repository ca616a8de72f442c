"""
Tests for docwriter.models: rule matching and application.
"""

import pytest
from docx import Document
from docx.oxml.ns import qn
from pydantic import TypeAdapter, ValidationError

from docwriter.errors import CollaboratorFailure, PreconditionError
from docwriter.models import (
    MarkdownAppenderRule,
    MarkdownInsertionRule,
    RegexReplacementRule,
    Rule,
    TextReplacementRule,
    TocInsertionRule,
    TocUpdateRule,
)

TOC_XPATH = './/w:sdt[w:sdtPr/w:docPartObj/w:docPartGallery[@w:val="Table of Contents"]]'


def _leaf(doc, text):
    return doc.add_paragraph().add_run(text)._r.find(qn("w:t"))


def _body_texts(doc):
    return [p.text for p in doc.paragraphs]


# ---------------------------------------------------------------------------
# TextReplacementRule
# ---------------------------------------------------------------------------


def test_text_rule_matches_whole_placeholder_only():
    doc = Document()
    rule = TextReplacementRule(text_to_replace="doc.id", value="DOC-1")

    assert rule.placeholder == "$(doc.id)"
    assert rule.matches(_leaf(doc, "$(doc.id)"))
    assert not rule.matches(_leaf(doc, "ID: $(doc.id)"))
    assert not rule.matches(doc)
    assert not rule.matches(doc.paragraphs[0]._p)


def test_text_rule_replaces_leaf_value():
    doc = Document()
    leaf = _leaf(doc, "$(name)")

    TextReplacementRule(text_to_replace="name", value="Jane").apply(leaf)

    assert leaf.text == "Jane"


def test_text_rule_custom_placeholder_format():
    doc = Document()
    leaf = _leaf(doc, "${name}")
    rule = TextReplacementRule(text_to_replace="name", value="Jane", placeholder_format="${{{}}}")

    assert rule.placeholder == "${name}"
    rule.apply(leaf)
    assert leaf.text == "Jane"


def test_text_rule_value_supplier_is_late_bound():
    doc = Document()
    calls = []

    def supplier():
        calls.append(1)
        return f"call {len(calls)}"

    rule = TextReplacementRule(text_to_replace="n", value=supplier)
    assert calls == []

    first, second = _leaf(doc, "$(n)"), _leaf(doc, "$(n)")
    rule.apply(first)
    rule.apply(second)

    assert (first.text, second.text) == ("call 1", "call 2")


def test_text_rule_none_value_clears_text():
    doc = Document()
    leaf = _leaf(doc, "$(n)")

    TextReplacementRule(text_to_replace="n").apply(leaf)

    assert leaf.text == ""


def test_text_rule_precondition():
    doc = Document()
    leaf = _leaf(doc, "something else")

    with pytest.raises(PreconditionError):
        TextReplacementRule(text_to_replace="n", value="x").apply(leaf)
    assert leaf.text == "something else"


def test_text_rule_rejects_empty_name_and_bad_format():
    with pytest.raises(ValidationError):
        TextReplacementRule(text_to_replace="", value="x")
    with pytest.raises(ValueError):
        TextReplacementRule(text_to_replace="n", placeholder_format="$()")
    for bad_format in ("{a}{}", "{}{}", "{}}", "{}{0}"):
        with pytest.raises(ValidationError):
            TextReplacementRule(text_to_replace="n", value="x", placeholder_format=bad_format)


# ---------------------------------------------------------------------------
# RegexReplacementRule
# ---------------------------------------------------------------------------


def test_regex_rule_matches_whole_text():
    doc = Document()
    rule = RegexReplacementRule(pattern=r"\$\{(\w+)\}", value=r"<\1>")

    assert rule.matches(_leaf(doc, "${name}"))
    assert not rule.matches(_leaf(doc, "Dear ${name}"))
    assert not rule.matches(doc)


def test_regex_rule_substitutes_with_groups():
    doc = Document()
    leaf = _leaf(doc, "${name}")

    RegexReplacementRule(pattern=r"\$\{(?P<var>\w+)\}", value=r"[\g<var>]").apply(leaf)

    assert leaf.text == "[name]"


def test_regex_rule_reformats_matching_text():
    doc = Document()
    leaf = _leaf(doc, "2024-01-02")

    RegexReplacementRule(pattern=r"(\d+)-(\d+)-(\d+)", value=r"\3.\2.\1").apply(leaf)

    assert leaf.text == "02.01.2024"


def test_regex_rule_literal_value_keeps_backslashes():
    doc = Document()
    leaf = _leaf(doc, "${path}")

    RegexReplacementRule(pattern=r"\$\{path\}", value=lambda: r"C:\data\x", literal=True).apply(leaf)

    assert leaf.text == r"C:\data\x"


def test_regex_rule_precondition():
    doc = Document()
    leaf = _leaf(doc, "abc")

    with pytest.raises(PreconditionError):
        RegexReplacementRule(pattern=r"\d+", value="x").apply(leaf)
    assert leaf.text == "abc"


def test_regex_rule_rejects_invalid_patterns():
    with pytest.raises(ValidationError):
        RegexReplacementRule(pattern="", value="x")
    with pytest.raises(ValidationError):
        RegexReplacementRule(pattern="(unclosed", value="x")


# ---------------------------------------------------------------------------
# Document-level rules
# ---------------------------------------------------------------------------


def test_document_rules_match_document_root_only():
    doc = Document()
    leaf = _leaf(doc, "text")

    rules = (MarkdownAppenderRule(value="x"), MarkdownInsertionRule(value="x"), TocInsertionRule(), TocUpdateRule())
    for rule in rules:
        assert rule.matches(doc)
        assert not rule.matches(doc.element)
        assert not rule.matches(leaf)
        with pytest.raises(PreconditionError):
            rule.apply(leaf)


def test_markdown_appender_appends_content():
    doc = Document()
    doc.add_paragraph("Existing")

    MarkdownAppenderRule(value="# Title\n\nSome **bold** text.").apply(doc)

    assert _body_texts(doc) == ["Existing", "Title", "Some bold text."]
    assert doc.paragraphs[1].style.name == "Heading 1"
    bold_runs = [r for r in doc.paragraphs[2].runs if r.bold]
    assert [r.text for r in bold_runs] == ["bold"]


def test_markdown_appender_none_value_is_noop():
    doc = Document()
    doc.add_paragraph("Existing")

    MarkdownAppenderRule(value=lambda: None).apply(doc)

    assert _body_texts(doc) == ["Existing"]


def test_markdown_appender_wraps_renderer_errors():
    doc = Document()

    def broken():
        return 42  # not a string

    with pytest.raises(CollaboratorFailure) as exc_info:
        MarkdownAppenderRule(value=broken).apply(doc)
    assert exc_info.value.__cause__ is not None


def test_markdown_insertion_replaces_placeholder_paragraph():
    doc = Document()
    doc.add_paragraph("Before")
    doc.add_paragraph("[CONTENT]")
    doc.add_paragraph("After")

    MarkdownInsertionRule(value="- one\n- two", placeholder="[CONTENT]").apply(doc)

    assert _body_texts(doc) == ["Before", "one", "two", "After"]


def test_markdown_insertion_missing_placeholder():
    doc = Document()
    doc.add_paragraph("Before")

    with pytest.raises(CollaboratorFailure):
        MarkdownInsertionRule(value="text", placeholder="[MISSING]").apply(doc)
    assert _body_texts(doc) == ["Before"]


def test_markdown_insertion_without_placeholder_appends():
    doc = Document()
    doc.add_paragraph("Before")

    MarkdownInsertionRule(value="After").apply(doc)

    assert _body_texts(doc) == ["Before", "After"]


def test_toc_insertion_replaces_placeholder():
    doc = Document()
    doc.add_paragraph("Intro")
    doc.add_paragraph("[TOC]")
    doc.add_heading("Chapter", level=1)

    TocInsertionRule(placeholder="[TOC]").apply(doc)

    blocks = list(doc.element.body.iterchildren())
    assert blocks[1].tag == qn("w:sdt")
    assert "[TOC]" not in _body_texts(doc)
    entries = [t.text for t in blocks[1].iter(qn("w:t"))]
    assert entries == ["Table of Contents", "Chapter"]


def test_toc_insertion_missing_placeholder_appends():
    doc = Document()
    doc.add_paragraph("Intro")

    TocInsertionRule(placeholder="[TOC]").apply(doc)

    blocks = [b for b in doc.element.body.iterchildren() if b.tag != qn("w:sectPr")]
    assert blocks[-1].tag == qn("w:sdt")


def test_toc_update_refreshes_entries():
    doc = Document()
    TocInsertionRule().apply(doc)
    doc.add_heading("First", level=1)
    doc.add_heading("Second", level=2)
    doc.add_heading("Too deep", level=4)

    TocUpdateRule().apply(doc)

    sdt = doc.element.body.xpath(TOC_XPATH)[0]
    texts = [t.text for t in sdt.iter(qn("w:t"))]
    assert texts == ["Table of Contents", "First", "Second"]
    instr = "".join(i.text for i in sdt.iter(qn("w:instrText")))
    assert 'TOC \\o "1-3"' in instr


def test_toc_update_without_toc():
    doc = Document()

    TocUpdateRule().apply(doc)
    with pytest.raises(CollaboratorFailure):
        TocUpdateRule(strict=True).apply(doc)


def test_toc_page_numbering_requests_field_update():
    doc = Document()
    doc.add_heading("Chapter", level=1)

    TocInsertionRule(skip_page_numbering=False).apply(doc)

    update = doc.settings.element.find(qn("w:updateFields"))
    assert update is not None
    assert update.get(qn("w:val")) == "true"


# ---------------------------------------------------------------------------
# Rule union
# ---------------------------------------------------------------------------


def test_rules_validate_from_data_by_kind():
    adapter = TypeAdapter(Rule)

    rule = adapter.validate_python({"kind": "regex_replacement", "pattern": "x+", "value": "y"})
    assert isinstance(rule, RegexReplacementRule)

    rule = adapter.validate_python({"kind": "toc_insertion", "placeholder": "[TOC]"})
    assert isinstance(rule, TocInsertionRule)

    with pytest.raises(ValidationError):
        adapter.validate_python({"kind": "unknown"})


def test_rules_are_immutable():
    rule = TextReplacementRule(text_to_replace="n", value="x")
    with pytest.raises(ValidationError):
        rule.value = "y"
