import re
from typing import Annotated, Any, Callable, List, Literal, Optional, Union

import structlog
from docx.oxml.ns import qn
from docx.text.paragraph import Paragraph
from pydantic import BaseModel, ConfigDict, Field, field_validator

from docwriter.docx.markdown import MarkdownRenderer
from docwriter.docx.toc import DEFAULT_HEADING_TEXT, DEFAULT_SWITCHES, TocGenerator
from docwriter.errors import CollaboratorFailure, PreconditionError
from docwriter.utils.docx import find_paragraph_by_text, get_text, is_document_root, is_text_leaf, set_text

logger = structlog.get_logger(__name__)

ValueSupplier = Callable[[], Optional[str]]
RuleValue = Union[str, ValueSupplier]


def resolve_value(value: Optional[RuleValue]) -> Optional[str]:
    """Suppliers are called on every resolution, never at rule construction."""
    if callable(value):
        return value()
    return value


class BaseRule(BaseModel):
    """
    A rule to be applied in order to create or update the contents of a document.
    apply() is only valid on nodes for which matches() returned True.
    """

    model_config = ConfigDict(frozen=True)

    def matches(self, node: Any) -> bool:
        raise NotImplementedError

    def apply(self, node: Any):
        raise NotImplementedError

    def _check(self, node: Any):
        if not self.matches(node):
            raise PreconditionError(f"Rule doesn't apply. Call matches() first: {node!r}")


class TextReplacementRule(BaseRule):
    """
    Replaces a placeholder text element with a value.
    The document is expected to hold the placeholder as the whole text of a
    <w:t> element, wrapped as $(<text_to_replace>) by default.
    """

    kind: Literal["text_replacement"] = "text_replacement"

    text_to_replace: str = Field(..., min_length=1, description="Placeholder name, e.g. 'doc.id' for '$(doc.id)'.")
    value: Optional[RuleValue] = Field(None, description="Replacement text or a function returning it.")
    placeholder_format: str = Field("$({})", description="How the name is wrapped in the document. '{}' is exact.")

    @field_validator("placeholder_format")
    @classmethod
    def _has_slot(cls, v: str) -> str:
        if "{}" not in v:
            raise ValueError("placeholder_format must contain '{}'")
        try:
            v.format("x")
        except (KeyError, IndexError, ValueError) as e:
            raise ValueError(f"placeholder_format must have '{{}}' as its only field: {e!r}") from e
        return v

    @property
    def placeholder(self) -> str:
        return self.placeholder_format.format(self.text_to_replace)

    def matches(self, node: Any) -> bool:
        return is_text_leaf(node) and get_text(node) == self.placeholder

    def apply(self, node: Any):
        self._check(node)
        set_text(node, resolve_value(self.value) or "")
        logger.debug("Replaced placeholder", placeholder=self.placeholder)


class RegexReplacementRule(BaseRule):
    """
    Replaces all findings of a regular expression in text elements whose whole
    text matches it. The value is a replacement template in Python's re syntax
    (\\1, \\g<name>), so backslashes in it must be escaped. Set literal to
    insert the value as plain text instead.
    """

    kind: Literal["regex_replacement"] = "regex_replacement"

    pattern: str = Field(..., min_length=1)
    value: Optional[RuleValue] = None
    literal: bool = Field(False, description="Insert the value as is, without template expansion.")

    @field_validator("pattern")
    @classmethod
    def _compiles(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid regular expression: {e}") from e
        return v

    def matches(self, node: Any) -> bool:
        return is_text_leaf(node) and re.fullmatch(self.pattern, get_text(node)) is not None

    def apply(self, node: Any):
        self._check(node)

        old_value = get_text(node)
        replacement = resolve_value(self.value) or ""
        if self.literal:
            new_value = re.sub(self.pattern, lambda _: replacement, old_value)
        else:
            new_value = re.sub(self.pattern, replacement, old_value)

        if new_value != old_value:
            set_text(node, new_value)
            logger.debug("Regex replaced", pattern=self.pattern)


class DocumentLevelRule(BaseRule):
    """A rule that works on the whole document. It matches the document root only."""

    def matches(self, node: Any) -> bool:
        return is_document_root(node)


class MarkdownAppenderRule(DocumentLevelRule):
    """Appends content given as markdown to the end of the document."""

    kind: Literal["markdown_append"] = "markdown_append"

    value: Optional[RuleValue] = Field(None, description="Markdown text or a function returning it.")
    plugins: Optional[List[str]] = Field(None, description="mistune plugins. Defaults to the full extension set.")

    def apply(self, node: Any):
        self._check(node)

        markdown_text = resolve_value(self.value)
        if markdown_text is None:
            logger.debug("No markdown content to append")
            return

        try:
            MarkdownRenderer(node, self.plugins).render(markdown_text)
        except Exception as e:
            raise CollaboratorFailure("Cannot render markdown") from e


class MarkdownInsertionRule(DocumentLevelRule):
    """
    Replaces a placeholder paragraph with content given as markdown.
    Without a placeholder the content is appended.
    """

    kind: Literal["markdown_insertion"] = "markdown_insertion"

    value: Optional[RuleValue] = None
    placeholder: Optional[str] = Field(None, description="Text of the paragraph to replace.")
    plugins: Optional[List[str]] = None

    def apply(self, node: Any):
        self._check(node)

        markdown_text = resolve_value(self.value)
        if markdown_text is None:
            logger.debug("No markdown content to insert")
            return

        anchor = None
        if self.placeholder:
            paragraph = find_paragraph_by_text(node, self.placeholder)
            if paragraph is None:
                raise CollaboratorFailure(f"Markdown placeholder not found: {self.placeholder!r}")
            anchor = paragraph._p

        try:
            renderer = MarkdownRenderer(node, self.plugins)
            if anchor is None:
                renderer.render(markdown_text)
            else:
                renderer.render_before(anchor, markdown_text)
        except Exception as e:
            raise CollaboratorFailure("Cannot render markdown") from e

        if anchor is not None:
            anchor.getparent().remove(anchor)


class TocInsertionRule(DocumentLevelRule):
    """
    Inserts a table of contents, either in place of a placeholder paragraph or
    at the end of the document. After all headlines are in place, run a
    TocUpdateRule to refresh the entries.
    """

    kind: Literal["toc_insertion"] = "toc_insertion"

    placeholder: Optional[str] = Field(None, description="Text of the paragraph to replace. None appends.")
    heading_text: str = DEFAULT_HEADING_TEXT
    switches: str = DEFAULT_SWITCHES
    skip_page_numbering: bool = True

    def compute_insertion_index(self, doc) -> Optional[int]:
        """
        Returns the body block index of the placeholder paragraph, or None to append.
        The placeholder is expected alone in its own paragraph.
        """
        if not self.placeholder:
            return None

        blocks = [child for child in doc.element.body.iterchildren() if child.tag != qn("w:sectPr")]
        for index, block in enumerate(blocks):
            if block.tag == qn("w:p") and Paragraph(block, doc).text == self.placeholder:
                return index

        logger.warning("ToC placeholder not found, appending", placeholder=self.placeholder)
        return None

    def apply(self, node: Any):
        self._check(node)

        index = self.compute_insertion_index(node)
        if index is not None:
            body = node.element.body
            blocks = [child for child in body.iterchildren() if child.tag != qn("w:sectPr")]
            body.remove(blocks[index])

        try:
            TocGenerator(node).generate_toc(index, self.heading_text, self.switches, self.skip_page_numbering)
        except Exception as e:
            raise CollaboratorFailure("Cannot create table of contents") from e


class TocUpdateRule(DocumentLevelRule):
    """
    Updates an existing table of contents.
    Without a ToC in the document this does nothing, unless strict is set.
    """

    kind: Literal["toc_update"] = "toc_update"

    skip_page_numbering: bool = True
    strict: bool = False

    def apply(self, node: Any):
        self._check(node)

        try:
            updated = TocGenerator(node).update_toc(self.skip_page_numbering)
        except Exception as e:
            raise CollaboratorFailure("Cannot update table of contents") from e

        if not updated:
            if self.strict:
                raise CollaboratorFailure("No table of contents found to update")
            logger.info("No table of contents found, nothing to update")


Rule = Annotated[
    Union[
        TextReplacementRule,
        RegexReplacementRule,
        MarkdownAppenderRule,
        MarkdownInsertionRule,
        TocInsertionRule,
        TocUpdateRule,
    ],
    Field(discriminator="kind"),
]
