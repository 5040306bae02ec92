"""Heading structure rules."""
from typing import Iterator, Optional

from app.features.accessibility.services.content_tree import ContentTree
from app.features.accessibility.services.rules.base import Finding, finding_for


class HeadingsSequenceRule:
    """Heading levels must not skip (an h2 followed directly by an h4)."""
    id = "headings-sequence"
    name = "Skipped heading level"
    version = 1

    def apply(self, tree: ContentTree) -> Iterator[Finding]:
        previous: Optional[int] = None
        for heading in tree.headings():
            level = tree.heading_level(heading)
            if previous is not None and level > previous + 1:
                yield finding_for(self, tree, heading, level=level, previous_level=previous)
            previous = level


class HeadingsStartAtH2Rule:
    """The page title is the only h1; content headings start at h2."""
    id = "headings-start-at-h2"
    name = "Heading level 1 in content"
    version = 1

    def apply(self, tree: ContentTree) -> Iterator[Finding]:
        for heading in tree.find_tags("h1"):
            yield finding_for(self, tree, heading, text=tree.text(heading)[:80])


class ParagraphsForHeadingsRule:
    """Long runs of text marked up as headings should be paragraphs."""
    id = "paragraphs-for-headings"
    name = "Heading too long"
    version = 1

    MAX_LENGTH = 120

    def apply(self, tree: ContentTree) -> Iterator[Finding]:
        for heading in tree.headings():
            length = len(tree.text(heading))
            if length > self.MAX_LENGTH:
                yield finding_for(self, tree, heading, text_length=length, max_length=self.MAX_LENGTH)
