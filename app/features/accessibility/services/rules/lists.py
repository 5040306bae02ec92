"""List markup rules."""
import re
from typing import Iterator

from app.features.accessibility.services.content_tree import ContentTree
from app.features.accessibility.services.rules.base import Finding, finding_for

LIST_MARKER_RE = re.compile(r"^\s*(?:[-*•◦]|\d+[.)]|[a-zA-Z][.)])\s+\S")


class ListStructureRule:
    """Paragraphs that start with a bullet or number marker should be real lists."""
    id = "list-structure"
    name = "List not formatted as a list"
    version = 1

    def apply(self, tree: ContentTree) -> Iterator[Finding]:
        for paragraph in tree.find_tags("p"):
            text = paragraph.get_text()
            if LIST_MARKER_RE.match(text):
                yield finding_for(self, tree, paragraph, marker=text.strip()[:3])
