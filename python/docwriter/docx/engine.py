from typing import Any, List, Sequence

import structlog

from docwriter.docx.walker import collect
from docwriter.utils.docx import is_document_root

logger = structlog.get_logger(__name__)


class RuleEngine:
    """
    Applies an ordered set of rules to every node of a document.

    One call to apply() is one pass. The node list is taken before the first rule
    runs, so content inserted by a rule (e.g. rendered markdown) is only visited
    by the next pass. Callers that combine content insertion with text
    replacement run one pass per step.

    There is no rollback: if a rule fails, the exception propagates and the
    document keeps every change applied before the failure.
    """

    def __init__(self, rules: Sequence[Any]):
        self.rules = tuple(rules)

    def nodes_for(self, root: Any) -> List[Any]:
        """The document root proxy comes first, followed by the elements in pre-order."""
        nodes: List[Any] = list(collect(root))
        if is_document_root(root):
            nodes.insert(0, root)
        return nodes

    def matching_rules(self, node: Any) -> list:
        return [rule for rule in self.rules if rule.matches(node)]

    def apply_to_node(self, node: Any) -> int:
        applied = 0
        for rule in self.rules:
            # Re-checked right before applying: an earlier rule may have changed the node
            if rule.matches(node):
                rule.apply(node)
                applied += 1
        return applied

    def apply(self, root: Any) -> int:
        """Runs one pass over root. Returns the number of rule applications."""
        nodes = self.nodes_for(root)

        applied = 0
        for node in nodes:
            applied += self.apply_to_node(node)

        logger.info("Applied rules", rules=len(self.rules), nodes=len(nodes), applications=applied)
        return applied
