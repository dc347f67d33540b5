"""Conversion between editor JSON (TipTap/ProseMirror shape) and RichNode trees."""

from typing import Any

from draftdesk.content.exceptions import DocumentFormatError
from draftdesk.content.models import RichNode


def build_document(data: dict[str, Any] | None) -> RichNode | None:
    """Validate editor JSON and build an immutable RichNode tree.

    Raises:
        DocumentFormatError: on any structural problem.
    """
    if data is None:
        return None
    return _build_node(data, "doc")


def document_to_dict(node: RichNode | None) -> dict[str, Any] | None:
    """Serialize a RichNode tree back into editor JSON."""
    if node is None:
        return None
    result: dict[str, Any] = {"type": node.type}
    if node.attrs is not None:
        result["attrs"] = dict(node.attrs)
    if node.content is not None:
        result["content"] = [document_to_dict(child) for child in node.content]
    if node.text is not None:
        result["text"] = node.text
    if node.marks is not None:
        result["marks"] = [dict(mark) for mark in node.marks]
    return result


def _build_node(raw: Any, path: str) -> RichNode:
    if not isinstance(raw, dict):
        raise DocumentFormatError(f"Node at {path} must be an object")
    node_type = raw.get("type")
    if not node_type or not isinstance(node_type, str):
        raise DocumentFormatError(f"Node at {path}: 'type' must be a non-empty string")

    attrs = raw.get("attrs")
    if attrs is not None and not isinstance(attrs, dict):
        raise DocumentFormatError(f"Node at {path}: 'attrs' must be an object")

    text = raw.get("text")
    if text is not None and not isinstance(text, str):
        raise DocumentFormatError(f"Node at {path}: 'text' must be a string")

    marks = raw.get("marks")
    if marks is not None:
        if not isinstance(marks, list) or not all(isinstance(m, dict) for m in marks):
            raise DocumentFormatError(f"Node at {path}: 'marks' must be a list of objects")
        marks = tuple(marks)

    content = raw.get("content")
    children: tuple[RichNode, ...] | None = None
    if content is not None:
        if not isinstance(content, list):
            raise DocumentFormatError(f"Node at {path}: 'content' must be a list")
        children = tuple(
            _build_node(child, f"{path}.content[{i}]") for i, child in enumerate(content)
        )

    return RichNode(type=node_type, attrs=attrs, content=children, text=text, marks=marks)
