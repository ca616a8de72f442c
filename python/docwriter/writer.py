"""
Facades for writing DOCX files.

RuleBasedDocxWriter runs rule passes over a loaded (or freshly created)
document. SimpleMarkdownDocxWriter turns markdown into a document and
SimpleDocxProcessor offers an imperative API for building or patching one.
"""

from pathlib import Path
from typing import IO, Any, List, Optional, Sequence, Union

import structlog
from docx import Document
from docx.document import Document as DocumentObject

from docwriter.docx.engine import RuleEngine
from docwriter.docx.replacer import TextReplacer
from docwriter.errors import DocWriterError, InvalidArgumentError
from docwriter.models import MarkdownAppenderRule, TocInsertionRule, TocUpdateRule
from docwriter.utils.docx import normalize_docx

logger = structlog.get_logger(__name__)

Source = Union[str, Path, IO[bytes]]

VARIABLE_FORMAT = "${{{}}}"


def create_default_document() -> DocumentObject:
    """Returns a new document based on python-docx's default template."""
    return Document()


def load_document(source: Source) -> DocumentObject:
    try:
        if isinstance(source, Path):
            source = str(source)
        elif hasattr(source, "seek"):
            source.seek(0)
        return Document(source)
    except Exception as e:
        raise DocWriterError(f"Cannot load document: {source!r}") from e


def save_document(doc: DocumentObject, target: Source):
    if target is None:
        raise InvalidArgumentError("target cannot be None")
    try:
        if isinstance(target, Path):
            target = str(target)
        doc.save(target)
    except Exception as e:
        raise DocWriterError(f"Error writing target: {target!r}") from e


class RuleBasedDocxWriter:
    """
    Writes a document by applying rules to all of its elements.

    Rules are given directly, as passes (a list of rule lists, each run as its own
    engine pass), or by overriding init_rules() in a subclass.
    """

    def __init__(self, rules: Optional[Sequence[Any]] = None, passes: Optional[Sequence[Sequence[Any]]] = None):
        if rules is not None and passes is not None:
            raise InvalidArgumentError("Pass either rules or passes, not both")

        if passes is not None:
            self.passes: List[List[Any]] = [list(p) for p in passes]
        elif rules is not None:
            self.passes = [list(rules)]
        else:
            self.passes = [list(self.init_rules())]

    def init_rules(self) -> List[Any]:
        """Rules applied to the document, in order. Subclasses override this."""
        return []

    @property
    def rules(self) -> List[Any]:
        return [rule for rules in self.passes for rule in rules]

    def write(self, target: Source, source: Optional[Source] = None) -> DocumentObject:
        """
        Loads source (or creates the default document), applies all rules and
        saves the result to target. Returns the written document.
        """
        doc = self.load_document(source) if source is not None else self.create_default_document()
        self.modify_document(doc)
        self.save_document(doc, target)
        return doc

    def create_default_document(self) -> DocumentObject:
        return create_default_document()

    def load_document(self, source: Source) -> DocumentObject:
        return load_document(source)

    def save_document(self, doc: DocumentObject, target: Source):
        save_document(doc, target)

    def modify_document(self, doc: DocumentObject) -> int:
        applied = 0
        for index, rules in enumerate(self.passes):
            count = RuleEngine(rules).apply(doc)
            logger.debug("Finished pass", index=index, applications=count)
            applied += count
        return applied


class SimpleMarkdownDocxWriter:
    """
    Writes markdown content into a document.
    The content is read when write() runs, so it can be set after construction.
    """

    def __init__(self, markdown_content: Optional[str] = None):
        self.markdown_content = markdown_content
        self._writer = RuleBasedDocxWriter(rules=[MarkdownAppenderRule(value=lambda: self.markdown_content)])

    def write(self, target: Source, source: Optional[Source] = None) -> DocumentObject:
        return self._writer.write(target, source)


class SimpleDocxProcessor:
    """Opens, modifies and saves a single document."""

    def __init__(self):
        self._document: Optional[DocumentObject] = None
        self._replacer = TextReplacer()

    @property
    def document(self) -> DocumentObject:
        if self._document is None:
            raise DocWriterError("No document found. See create_document() and load_document().")
        return self._document

    @document.setter
    def document(self, doc: Optional[DocumentObject]):
        self._document = doc

    def create_document(self):
        """Creates a new document, replacing the current one."""
        self._document = create_default_document()

    def load_document(self, source: Source):
        self._document = load_document(source)
        logger.info("Loaded document", source=str(source))

    def save_document(self, target: Source):
        save_document(self.document, target)
        logger.info("Saved document", target=str(target))

    def add_markdown(self, markdown_content: str):
        if markdown_content is None:
            raise InvalidArgumentError("markdown_content cannot be None")
        MarkdownAppenderRule(value=markdown_content).apply(self.document)

    def add_headline(self, text: str, level: int = 1):
        if not 1 <= level <= 6:
            raise InvalidArgumentError(f"Headline level must be between 1 and 6, got {level}")
        self.add_markdown("#" * level + " " + text)

    def add_page_break(self):
        """The next content starts on a new page."""
        self.document.add_page_break()

    def add_toc(self, placeholder: Optional[str] = None):
        """
        Adds a table of contents. Call update_toc() once all headlines are in place.
        """
        TocInsertionRule(placeholder=placeholder).apply(self.document)

    def update_toc(self):
        """Refreshes the table of contents. Does nothing if there is none."""
        TocUpdateRule().apply(self.document)

    def replace_text(self, text_to_replace: str, replacement: str) -> int:
        return self._replacer.replace(self.document, text_to_replace, replacement)

    def replace_variable(self, name: str, value: str) -> int:
        """
        Replaces ${name} with value, e.g. replace_variable("doc.id", "DOC-562342").
        Runs split by editing history are merged first, so the variable is found
        even if Word stored it across several runs.
        """
        if not name:
            raise InvalidArgumentError("name cannot be empty")
        normalize_docx(self.document)
        return self._replacer.replace_in_document(
            self.document, VARIABLE_FORMAT.format(name), value, include_headers_footers=True
        )
