from typing import Any

import structlog
from docx.document import Document as DocumentObject

from docwriter.docx.walker import Token, tokenize
from docwriter.errors import InvalidArgumentError
from docwriter.utils.docx import create_text_leaf, iter_document_parts, unwrap

logger = structlog.get_logger(__name__)


class TextReplacer:
    """
    Replaces all occurrences of a text, including occurrences that span several
    sibling <w:t> elements of the same run.

    The replacement works in two phases: all tokens of the subtree are recorded
    first, then each token is rewritten. A rewritten token is collapsed into a
    single <w:t> at the position of its first leaf; non-text siblings (tabs,
    breaks, run properties) keep their position.
    """

    def replace(self, model: Any, text_to_replace: str, replacement: str) -> int:
        """
        Replaces all occurrences of text_to_replace below model.

        Args:
            model: A Document (its main body is used) or any node of the tree.
            text_to_replace: Literal text to search for. Must not be empty.
            replacement: Literal replacement text.

        Returns:
            The number of tokens that were rewritten.
        """
        if model is None:
            raise InvalidArgumentError("model cannot be None")
        if not text_to_replace:
            raise InvalidArgumentError("text_to_replace cannot be empty")
        if replacement is None:
            raise InvalidArgumentError("replacement cannot be None")

        root = model.element.body if isinstance(model, DocumentObject) else unwrap(model)

        tokens = tokenize(root)

        rewritten = 0
        for token in tokens:
            if self._process(token, text_to_replace, replacement):
                rewritten += 1

        logger.debug("Replaced text", target=text_to_replace, tokens=len(tokens), rewritten=rewritten)
        return rewritten

    def replace_in_document(
        self,
        doc: DocumentObject,
        text_to_replace: str,
        replacement: str,
        include_headers_footers: bool = False,
    ) -> int:
        if not include_headers_footers:
            return self.replace(doc, text_to_replace, replacement)

        rewritten = 0
        for part in iter_document_parts(doc):
            rewritten += self.replace(part, text_to_replace, replacement)
        return rewritten

    def _process(self, token: Token, text_to_replace: str, replacement: str) -> bool:
        if not token.leaves:
            return False

        original = token.text
        # Global, non-overlapping, left-to-right
        joined = original.replace(text_to_replace, replacement)

        if joined == original:
            return False

        parent = token.parent
        index = parent.index(token.leaves[0])
        for leaf in token.leaves:
            parent.remove(leaf)

        parent.insert(index, create_text_leaf(joined))

        logger.debug("Collapsed token", parent=parent.tag, leaves=len(token.leaves), text=joined[:40])
        return True
