"""
Node registry: structural element id -> short human-readable description.

Built from the node tree of a full snapshot and extended by the subtrees
that mutation events add. Entries are never removed within a session.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from .privacy import redact
from .types import NodeType

# ids/classes that look machine generated (hashes, React useId values)
GENERATED_TOKEN = re.compile(r"^[a-z0-9]{8,}$", re.IGNORECASE)

MAX_TEXT_CONTENT = 100
MAX_INLINE_TEXT = 50

INTERACTIVE_TAGS = {"button", "a", "input", "select"}


@dataclass
class NodeDescriptor:
    node_id: int
    tag_name: str = ""
    id: str | None = None
    class_name: str | None = None
    type: str | None = None
    placeholder: str | None = None
    name: str | None = None
    role: str | None = None
    aria_label: str | None = None
    href: str | None = None
    src: str | None = None
    text_content: str | None = None

    @property
    def tag(self) -> str:
        return (self.tag_name or "").lower() or "element"

    @property
    def is_interactive(self) -> bool:
        return self.tag in INTERACTIVE_TAGS or self.role == "button"


def _attr(attrs: Dict[str, Any], key: str) -> str | None:
    value = attrs.get(key)
    if value is None or value is False:
        return None
    return str(value)


def _direct_text(node: Dict[str, Any]) -> str | None:
    children = node.get("childNodes") or []
    parts = []
    for child in children:
        if isinstance(child, dict) and child.get("type") == NodeType.TEXT:
            text = str(child.get("textContent") or "").strip()
            if text:
                parts.append(text)
    text = " ".join(parts).strip()
    if text and len(text) < MAX_TEXT_CONTENT:
        return text
    return None


def _is_generated(token: str) -> bool:
    return bool(GENERATED_TOKEN.match(token)) or token.startswith(":r")


def semantic_name(info: NodeDescriptor) -> str:
    tag = info.tag
    text = redact(info.text_content) if info.text_content else ""
    aria = redact(info.aria_label) if info.aria_label else ""

    if tag == "button" or info.role == "button":
        if text:
            return f'"{text}" button'
        if aria:
            return f'"{aria}" button'
        return "button"

    if tag == "a":
        if text:
            return f'"{text}" link'
        if aria:
            return f'"{aria}" link'
        if info.href:
            return f"link to {redact(info.href.rstrip('/').split('/')[-1] or info.href)}"
        return "link"

    if tag == "input":
        input_type = info.type or "text"
        for label in (info.placeholder, info.name, info.aria_label):
            if label:
                return f'"{redact(label)}" {input_type} field'
        return f"{input_type} input field"

    if tag == "textarea":
        for label in (info.placeholder, info.name):
            if label:
                return f'"{redact(label)}" text area'
        return "text area"

    if tag == "select":
        if info.name:
            return f'"{redact(info.name)}" dropdown'
        return "dropdown"

    if tag == "img":
        if info.src:
            filename = info.src.split("/")[-1].split("?")[0] or "image"
            return f"image ({redact(filename)})"
        return "image"

    if tag in ("div", "span") and text and len(info.text_content or "") < MAX_INLINE_TEXT:
        return f'"{text}"'

    if aria:
        return f'"{aria}" {tag}'

    if info.id and not _is_generated(info.id):
        return f"#{redact(info.id)} {tag}"

    if info.class_name:
        classes = [c for c in info.class_name.split() if len(c) > 2 and not c.startswith("_") and not GENERATED_TOKEN.match(c)]
        if classes:
            return f".{classes[0]} {tag}"

    return tag


class NodeRegistry:
    """Map of structural id -> NodeDescriptor for one session."""

    def __init__(self):
        self._nodes: Dict[int, NodeDescriptor] = {}

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id) -> bool:
        return node_id in self._nodes

    def get(self, node_id) -> Optional[NodeDescriptor]:
        return self._nodes.get(node_id)

    def register_tree(self, root: Any) -> int:
        """Walk a serialized node tree depth-first; returns the number of elements registered."""
        if not isinstance(root, dict):
            return 0
        added = 0
        stack = [root]
        while stack:
            node = stack.pop()
            node_id = node.get("id")
            if node_id is not None and node.get("type") == NodeType.ELEMENT:
                attrs = node.get("attributes") if isinstance(node.get("attributes"), dict) else {}
                self._nodes[node_id] = NodeDescriptor(
                    node_id=node_id,
                    tag_name=str(node.get("tagName") or ""),
                    id=_attr(attrs, "id"),
                    class_name=_attr(attrs, "class"),
                    type=_attr(attrs, "type"),
                    placeholder=_attr(attrs, "placeholder"),
                    name=_attr(attrs, "name"),
                    role=_attr(attrs, "role"),
                    aria_label=_attr(attrs, "aria-label"),
                    href=_attr(attrs, "href"),
                    src=_attr(attrs, "src"),
                    text_content=_direct_text(node),
                )
                added += 1
            children = node.get("childNodes") or []
            # reversed so the first child is visited first
            stack.extend(c for c in reversed(children) if isinstance(c, dict))
        return added

    def register_mutation(self, adds: Iterable[Any] | None) -> int:
        added = 0
        for add in adds or []:
            if isinstance(add, dict):
                added += self.register_tree(add.get("node"))
        return added

    def describe(self, node_id, fallback: str = "element") -> str:
        info = self._nodes.get(node_id)
        if info is None:
            return f"{fallback} #{node_id}"
        return semantic_name(info)


def find_title(root: Any) -> str:
    """Text of the first <title> element in a serialized tree, or ''."""
    if not isinstance(root, dict):
        return ""
    stack = [root]
    while stack:
        node = stack.pop()
        children = [c for c in (node.get("childNodes") or []) if isinstance(c, dict)]
        if node.get("tagName") == "title" and children and children[0].get("textContent"):
            return str(children[0]["textContent"])
        stack.extend(reversed(children))
    return ""
