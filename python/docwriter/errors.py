class DocWriterError(Exception):
    """Base class for errors raised while writing a document."""


class PreconditionError(DocWriterError):
    """A rule was asked to apply to a node it does not match. Call matches() first."""


class InvalidArgumentError(DocWriterError, ValueError):
    """Degenerate input, e.g. an empty search text."""


class CollaboratorFailure(DocWriterError):
    """
    python-docx, the markdown parser or the ToC generation failed.
    Always raised from the original exception.
    """
