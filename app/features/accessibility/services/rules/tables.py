"""Table markup rules."""
from typing import Iterator

from app.features.accessibility.services.content_tree import ContentTree
from app.features.accessibility.services.rules.base import Finding, finding_for

VALID_SCOPES = {"row", "col", "rowgroup", "colgroup"}


class TableHeaderRule:
    """Data tables need at least one header cell."""
    id = "table-header"
    name = "Table has no headers"
    version = 1

    def apply(self, tree: ContentTree) -> Iterator[Finding]:
        for table in tree.find_tags("table"):
            if (table.get("role") or "").lower() == "presentation":
                continue
            if table.find("th") is None:
                yield finding_for(self, tree, table)


class TableHeaderScopeRule:
    """Header cells must declare what they label."""
    id = "table-header-scope"
    name = "Table header scope missing"
    version = 1

    def apply(self, tree: ContentTree) -> Iterator[Finding]:
        for header in tree.find_tags("th"):
            scope = (header.get("scope") or "").strip().lower()
            if scope not in VALID_SCOPES:
                yield finding_for(self, tree, header, scope=scope or None)


class TableCaptionRule:
    """Data tables need a non-empty caption."""
    id = "table-caption"
    name = "Table caption missing"
    version = 1

    def apply(self, tree: ContentTree) -> Iterator[Finding]:
        for table in tree.find_tags("table"):
            if (table.get("role") or "").lower() == "presentation":
                continue
            caption = table.find("caption")
            if caption is None or not tree.text(caption):
                yield finding_for(self, tree, table)
