from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from docwriter.docx.engine import RuleEngine
from docwriter.docx.replacer import TextReplacer
from docwriter.errors import CollaboratorFailure, DocWriterError, InvalidArgumentError, PreconditionError
from docwriter.models import (
    MarkdownAppenderRule,
    MarkdownInsertionRule,
    RegexReplacementRule,
    TextReplacementRule,
    TocInsertionRule,
    TocUpdateRule,
)
from docwriter.writer import RuleBasedDocxWriter, SimpleDocxProcessor, SimpleMarkdownDocxWriter

try:
    __version__ = version("docwriter")
except PackageNotFoundError:
    # Running from a source checkout; read the pinned version if one is bundled
    _version_file = Path(__file__).parent / "VERSION"
    if _version_file.is_file():
        __version__ = _version_file.read_text().strip()
    else:
        __version__ = "0.0.0-dev"

__all__ = [
    "RuleEngine",
    "TextReplacer",
    "RuleBasedDocxWriter",
    "SimpleMarkdownDocxWriter",
    "SimpleDocxProcessor",
    "TextReplacementRule",
    "RegexReplacementRule",
    "MarkdownAppenderRule",
    "MarkdownInsertionRule",
    "TocInsertionRule",
    "TocUpdateRule",
    "DocWriterError",
    "PreconditionError",
    "InvalidArgumentError",
    "CollaboratorFailure",
    "__version__",
]
