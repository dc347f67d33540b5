"""Rewrites local image references inside a RichNode tree to uploaded URLs.

While a post is being composed, image nodes point at the preview handle of a
staged image (``blob:draftdesk/...``). Older drafts may instead carry a
placeholder URL of the form ``data:image/placeholder;id=<placeholder>``.
Both forms are resolved through the placeholder map produced by an upload
batch.
"""

import re
from collections.abc import Iterable, Mapping
from typing import Protocol

from draftdesk.content.models import RewriteResult, RichNode, UnresolvedReference

_PLACEHOLDER_URL_PREFIX = "data:image/placeholder;id="
_PLACEHOLDER_URL_RE = re.compile(r"data:image/placeholder;id=([^&]+)")


class StagedReference(Protocol):
    """The parts of a staged image the rewriter needs."""

    id: str
    placeholder: str
    preview_handle: str | None


def placeholder_url(placeholder: str) -> str:
    """Build the legacy placeholder URL for a placeholder token."""
    return f"{_PLACEHOLDER_URL_PREFIX}{placeholder}"


def extract_placeholder(src: str) -> str | None:
    match = _PLACEHOLDER_URL_RE.match(src)
    return match.group(1) if match else None


def rewrite(
    document: RichNode | None,
    placeholder_map: Mapping[str, str],
    staged_images: Iterable[StagedReference],
) -> RewriteResult:
    """Replace every resolvable local image reference with its final URL.

    Image nodes whose ``src`` is neither a live preview handle nor a
    placeholder URL of a staged image are left untouched and are not reported.
    References to staged images missing from ``placeholder_map`` are left
    untouched and reported as unresolved, once per image.
    """
    if document is None:
        return RewriteResult(document=None)

    images = list(staged_images)
    by_handle = {img.preview_handle: img for img in images if img.preview_handle}
    by_placeholder = {img.placeholder: img for img in images}
    unresolved: dict[str, UnresolvedReference] = {}

    def visit(node: RichNode) -> RichNode:
        if node.is_image and node.src is not None:
            node = _rewrite_image(node, node.src)
        if node.content is not None:
            node = node.with_content(tuple(visit(child) for child in node.content))
        return node

    def _rewrite_image(node: RichNode, src: str) -> RichNode:
        image = by_handle.get(src)
        placeholder = image.placeholder if image is not None else extract_placeholder(src)
        if placeholder is None:
            return node
        url = placeholder_map.get(placeholder)
        if url is not None:
            return node.with_attr("src", url)
        if image is None:
            image = by_placeholder.get(placeholder)
        if image is not None and image.id not in unresolved:
            unresolved[image.id] = UnresolvedReference(
                image_id=image.id, placeholder=image.placeholder, src=src
            )
        return node

    rewritten = visit(document)
    return RewriteResult(document=rewritten, unresolved=list(unresolved.values()))


def extract_image_sources(document: RichNode | None) -> list[str]:
    """Return every image ``src`` in document order."""
    sources: list[str] = []

    def traverse(node: RichNode) -> None:
        if node.is_image and node.src:
            sources.append(node.src)
        for child in node.content or ():
            traverse(child)

    if document is not None:
        traverse(document)
    return sources
