"""Link rules."""
from typing import Iterator

from bs4 import NavigableString, Tag

from app.features.accessibility.services.content_tree import ContentTree
from app.features.accessibility.services.rules.base import Finding, finding_for


def _next_element_sibling(node: Tag):
    sibling = node.next_sibling
    while sibling is not None:
        if isinstance(sibling, Tag):
            return sibling
        if isinstance(sibling, NavigableString) and sibling.strip():
            return None
        sibling = sibling.next_sibling
    return None


class AdjacentLinksRule:
    """Neighbouring links to the same URL should be merged into one."""
    id = "adjacent-links"
    name = "Adjacent links share a destination"
    version = 1

    def apply(self, tree: ContentTree) -> Iterator[Finding]:
        for link in tree.find_tags("a"):
            href = (link.get("href") or "").strip()
            if not href:
                continue
            following = _next_element_sibling(link)
            if following is not None and following.name == "a" and (following.get("href") or "").strip() == href:
                yield finding_for(self, tree, link, href=href)
