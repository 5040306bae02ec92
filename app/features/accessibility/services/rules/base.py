"""
Rule contract.

A rule is any object with a stable string ``id`` and an
``apply(tree) -> Iterable[Finding]`` method. Rules are stateless so the
engine may run them in any order or concurrently.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Protocol, runtime_checkable

from bs4 import Tag

from app.features.accessibility.services.content_tree import ContentTree


@dataclass(frozen=True)
class Finding:
    """One rule match from a single scan pass. Never persisted as-is."""
    rule_type: str
    node_path: str
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def identity(self):
        return (self.rule_type, self.node_path)


@runtime_checkable
class Rule(Protocol):
    id: str
    name: str
    version: int

    def apply(self, tree: ContentTree) -> Iterable[Finding]:
        ...


def finding_for(rule: Rule, tree: ContentTree, node: Tag, **metadata: Any) -> Finding:
    """Build a Finding for ``node``, tagging it with the rule's version."""
    metadata.setdefault("rule_version", rule.version)
    metadata.setdefault("element", node.name)
    return Finding(rule_type=rule.id, node_path=tree.node_path(node), metadata=metadata)
