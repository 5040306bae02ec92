"""Image alternative text rules."""
import os
import re
from typing import Iterator
from urllib.parse import unquote, urlparse

from app.features.accessibility.services.content_tree import ContentTree
from app.features.accessibility.services.rules.base import Finding, finding_for

IMAGE_FILENAME_RE = re.compile(r"\.(apng|avif|bmp|gif|ico|jpe?g|png|svg|tiff?|webp)$", re.IGNORECASE)


def _is_decorative(img) -> bool:
    role = (img.get("role") or "").strip().lower()
    return role in ("presentation", "none") or img.get("data-decorative") == "true"


class ImgAltRule:
    """Images must carry an alt attribute unless marked decorative."""
    id = "img-alt"
    name = "Image alt text missing"
    version = 1

    def apply(self, tree: ContentTree) -> Iterator[Finding]:
        for img in tree.find_tags("img"):
            if _is_decorative(img):
                continue
            if img.get("alt") is None:
                yield finding_for(self, tree, img, src=img.get("src", ""))


class ImgAltFilenameRule:
    """Alt text should describe the image, not repeat its file name."""
    id = "img-alt-filename"
    name = "Image alt text is a file name"
    version = 1

    def apply(self, tree: ContentTree) -> Iterator[Finding]:
        for img in tree.find_tags("img"):
            alt = (img.get("alt") or "").strip()
            if not alt:
                continue
            src = img.get("src") or ""
            basename = os.path.basename(unquote(urlparse(src).path))
            if IMAGE_FILENAME_RE.search(alt) or (basename and alt.lower() == basename.lower()):
                yield finding_for(self, tree, img, src=src, alt=alt)


class ImgAltLengthRule:
    """Alt text longer than the limit should move into the surrounding content."""
    id = "img-alt-length"
    name = "Image alt text too long"
    version = 1

    MAX_LENGTH = 120

    def apply(self, tree: ContentTree) -> Iterator[Finding]:
        for img in tree.find_tags("img"):
            alt = (img.get("alt") or "").strip()
            if len(alt) > self.MAX_LENGTH:
                yield finding_for(
                    self, tree, img, src=img.get("src", ""), alt_length=len(alt), max_length=self.MAX_LENGTH
                )
