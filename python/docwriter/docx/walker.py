"""
Traversal of the document element tree.

Both walks are pre-order and depth-first, following child order, and both return
fresh lists: callers that mutate the tree do so only after the walk is complete.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, List, Optional

from lxml import etree

from docwriter.utils.docx import get_children, get_text, is_text_leaf, unwrap


NodePredicate = Callable[[Any], bool]


@dataclass
class Token:
    """
    A maximal run of consecutive <w:t> siblings under one parent.
    Only valid until the tree is mutated.
    """

    parent: etree._Element
    leaves: List[etree._Element] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(get_text(leaf) for leaf in self.leaves)


def iter_nodes(root: Any) -> Iterator[etree._Element]:
    element = unwrap(root)
    yield element
    for child in get_children(element):
        yield from iter_nodes(child)


def collect(root: Any, predicate: Optional[NodePredicate] = None) -> List[etree._Element]:
    """
    Returns all nodes in the subtree of root (root included) in pre-order.
    Wrapper proxies are unwrapped before the predicate sees them.
    """
    if predicate is None:
        return list(iter_nodes(root))
    return [node for node in iter_nodes(root) if predicate(node)]


def collect_text_leaves(root: Any) -> List[etree._Element]:
    return collect(root, is_text_leaf)


def tokenize(root: Any) -> List[Token]:
    """
    Groups the text leaves below root into tokens.
    A token ends when the parent changes or a non-text sibling interrupts the run.
    """
    element = unwrap(root)
    tokens: List[Token] = []

    if is_text_leaf(element):
        parent = element.getparent()
        if parent is not None:
            tokens.append(Token(parent, [element]))
        return tokens

    _tokenize_children(element, tokens)
    return tokens


def _tokenize_children(parent: etree._Element, tokens: List[Token]):
    current: Optional[Token] = None
    for child in get_children(parent):
        if is_text_leaf(child):
            if current is None:
                current = Token(parent)
                tokens.append(current)
            current.leaves.append(child)
        else:
            current = None
            _tokenize_children(child, tokens)
