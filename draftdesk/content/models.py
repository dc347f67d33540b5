from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

IMAGE_NODE_TYPE = "image"


@dataclass(frozen=True)
class RichNode:
    """One node of a rich-text document tree (paragraph, heading, image, text, ...).

    Nodes are immutable: ``attrs`` and ``marks`` are wrapped in read-only
    mappings and ``content`` is always a tuple. Use ``with_attr`` and
    ``with_content`` to derive changed copies.
    """

    type: str
    attrs: Mapping[str, Any] | None = None
    content: tuple["RichNode", ...] | None = None
    text: str | None = None
    marks: tuple[Mapping[str, Any], ...] | None = None

    def __post_init__(self) -> None:
        if self.attrs is not None:
            object.__setattr__(self, "attrs", MappingProxyType(dict(self.attrs)))
        if self.content is not None:
            object.__setattr__(self, "content", tuple(self.content))
        if self.marks is not None:
            object.__setattr__(
                self, "marks", tuple(MappingProxyType(dict(m)) for m in self.marks)
            )

    @property
    def is_image(self) -> bool:
        return self.type == IMAGE_NODE_TYPE

    @property
    def src(self) -> str | None:
        if self.attrs is None:
            return None
        value = self.attrs.get("src")
        return value if isinstance(value, str) else None

    def with_attr(self, key: str, value: Any) -> "RichNode":
        attrs = dict(self.attrs or {})
        attrs[key] = value
        return RichNode(
            type=self.type,
            attrs=attrs,
            content=self.content,
            text=self.text,
            marks=self.marks,
        )

    def with_content(self, content: tuple["RichNode", ...]) -> "RichNode":
        return RichNode(
            type=self.type,
            attrs=self.attrs,
            content=content,
            text=self.text,
            marks=self.marks,
        )


@dataclass(frozen=True)
class UnresolvedReference:
    """A staged image referenced by the document that has no uploaded URL yet."""

    image_id: str
    placeholder: str
    src: str


@dataclass(frozen=True)
class RewriteResult:
    """Rewritten document plus every staged reference that could not be resolved."""

    document: RichNode | None
    unresolved: list[UnresolvedReference] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.unresolved
