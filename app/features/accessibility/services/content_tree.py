"""
Content Tree

Parses a resource's markup into a tree of element nodes and gives each node
a position-derived path such as ``/div[1]/p[2]/img[1]``.

Paths are computed from tag names and same-tag sibling indexes only, so two
structurally identical documents yield identical paths. Inserting or removing
a same-tag sibling before a node shifts that node's index, so an issue on it
is resolved and reported again under the new path.
"""
import re
from typing import Callable, Dict, Iterator, List, Optional, Union

from bs4 import BeautifulSoup, ParserRejectedMarkup, Tag

from app.features.accessibility.exceptions import MalformedContentError

HTML_CONTENT_TYPES = {"text/html", "application/xhtml+xml"}

HEADING_RE = re.compile(r"^h([1-6])$")

Predicate = Callable[[Tag], bool]


class ContentTree:
    """Parsed markup with stable, position-derived node paths."""

    def __init__(self, soup: BeautifulSoup):
        self.soup = soup
        self._paths: Dict[int, str] = {}
        self._assign_paths()

    @classmethod
    def parse(
        cls,
        markup: Union[str, bytes, None],
        content_type: Optional[str] = None,
        max_bytes: Optional[int] = None,
    ) -> "ContentTree":
        """
        Parse resource markup.

        Args:
            markup: HTML fragment or document
            content_type: MIME type of the content, HTML assumed when None
            max_bytes: reject content larger than this

        Returns:
            ContentTree

        Raises:
            MalformedContentError: content missing, not HTML, too large or unparseable
        """
        if content_type:
            mime = content_type.split(";")[0].strip().lower()
            if mime not in HTML_CONTENT_TYPES:
                raise MalformedContentError(f"Unsupported content type: {content_type}")

        if markup is None:
            raise MalformedContentError("Resource has no content to scan")

        if isinstance(markup, bytes):
            try:
                markup = markup.decode("utf-8")
            except UnicodeDecodeError as e:
                raise MalformedContentError(f"Content is not valid UTF-8: {e}") from e

        if not isinstance(markup, str):
            raise MalformedContentError(f"Unsupported content of type {type(markup).__name__}")

        if max_bytes is not None and len(markup.encode("utf-8")) > max_bytes:
            raise MalformedContentError(
                f"Content exceeds the {max_bytes} byte scanning limit"
            )

        if "\x00" in markup:
            raise MalformedContentError("Content contains NUL bytes")

        try:
            soup = BeautifulSoup(markup, "html.parser")
        except (ParserRejectedMarkup, AssertionError, ValueError) as e:
            raise MalformedContentError(f"Unable to parse content: {e}") from e

        return cls(soup)

    def _assign_paths(self) -> None:
        # Depth-first, document order; indexes are 1-based per tag name among siblings
        stack = [(self.soup, "")]
        while stack:
            parent, parent_path = stack.pop()
            counters: Dict[str, int] = {}
            children = []
            for child in parent.children:
                if not isinstance(child, Tag):
                    continue
                counters[child.name] = counters.get(child.name, 0) + 1
                path = f"{parent_path}/{child.name}[{counters[child.name]}]"
                self._paths[id(child)] = path
                children.append((child, path))
            stack.extend(reversed(children))

    def node_path(self, node: Tag) -> str:
        """
        Path of a node of this tree.

        Raises:
            KeyError: node does not belong to this tree
        """
        try:
            return self._paths[id(node)]
        except KeyError:
            raise KeyError(f"<{getattr(node, 'name', node)}> is not part of this content tree")

    def nodes(self) -> Iterator[Tag]:
        """All element nodes, depth-first in document order."""
        return (node for node in self.soup.descendants if isinstance(node, Tag))

    def find_all(self, predicate: Predicate) -> Iterator[Tag]:
        """Lazily yield element nodes matching ``predicate`` in document order."""
        for node in self.nodes():
            if predicate(node):
                yield node

    def find_tags(self, *names: str) -> Iterator[Tag]:
        wanted = set(names)
        return self.find_all(lambda node: node.name in wanted)

    def headings(self) -> List[Tag]:
        return list(self.find_all(lambda node: bool(HEADING_RE.match(node.name or ""))))

    @staticmethod
    def heading_level(node: Tag) -> Optional[int]:
        match = HEADING_RE.match(node.name or "")
        return int(match.group(1)) if match else None

    @staticmethod
    def text(node: Tag) -> str:
        return " ".join(node.get_text(" ", strip=True).split())

    def __len__(self) -> int:
        return len(self._paths)
