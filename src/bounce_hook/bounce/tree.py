# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Typed view of a parsed MIME message.

``email.message.Message`` mixes three shapes behind one class (multipart
containers, embedded messages and plain leaves) and even reports
``message/delivery-status`` as multipart. :func:`build_tree` turns it into
explicit node types so the DSN walk and the heuristic fallback can each look
for exactly what they need.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from email.message import Message
from email.parser import HeaderParser

DELIVERY_STATUS_TYPES = frozenset(
    {
        "message/delivery-status",
        "message/global-delivery-status",
        "text/delivery-status",
    }
)
EMBEDDED_MESSAGE_TYPES = frozenset({"message/rfc822", "message/global"})
EMBEDDED_HEADERS_TYPES = frozenset({"text/rfc822-headers", "message/global-headers"})


@dataclass
class Node:
    """Common part of every node: the MIME part it wraps."""

    part: Message

    @property
    def content_type(self) -> str:
        return self.part.get_content_type()


@dataclass
class LeafNode(Node):
    """A part with a body and no children."""

    @property
    def is_delivery_status(self) -> bool:
        return self.content_type in DELIVERY_STATUS_TYPES

    def text(self) -> str:
        """Decoded body text; empty when the body is not a plain payload."""
        payload = self.part.get_payload(decode=True)
        if not isinstance(payload, bytes):
            return ""
        charset = self.part.get_content_charset() or "utf-8"
        try:
            return payload.decode(charset, errors="replace")
        except LookupError:
            return payload.decode("utf-8", errors="replace")


@dataclass
class MultipartNode(Node):
    children: list[Node] = field(default_factory=list)


@dataclass
class MessageNode(Node):
    """An embedded message (``message/rfc822``) or just its headers.

    Attributes:
        message: The embedded message whose headers describe the original mail.
        body: Tree of the embedded body, None for headers-only parts.
    """

    message: Message = field(default_factory=Message)
    body: Node | None = None


def build_tree(part: Message) -> Node:
    """Convert a parsed message into a node tree."""
    ctype = part.get_content_type()

    # Checked first: the stdlib parser stores delivery-status blocks as a list
    if ctype in DELIVERY_STATUS_TYPES:
        return LeafNode(part)

    if ctype in EMBEDDED_MESSAGE_TYPES or ctype.startswith("message/"):
        payload = part.get_payload()
        if isinstance(payload, list) and payload and isinstance(payload[0], Message):
            embedded = payload[0]
            return MessageNode(part, message=embedded, body=build_tree(embedded))
        return LeafNode(part)

    if ctype in EMBEDDED_HEADERS_TYPES:
        text = LeafNode(part).text()
        return MessageNode(part, message=HeaderParser().parsestr(text))

    if part.is_multipart():
        payload = part.get_payload()
        return MultipartNode(part, children=[build_tree(p) for p in payload])

    return LeafNode(part)


def walk(node: Node, into_messages: bool = True) -> Iterator[Node]:
    """Depth-first traversal, optionally not descending into embedded messages."""
    yield node
    if isinstance(node, MultipartNode):
        for child in node.children:
            yield from walk(child, into_messages)
    elif isinstance(node, MessageNode) and into_messages and node.body is not None:
        yield from walk(node.body, into_messages)


def find_first(node: Node, predicate: Callable[[Node], bool], into_messages: bool = True) -> Node | None:
    return next((n for n in walk(node, into_messages) if predicate(n)), None)


__all__ = [
    "LeafNode",
    "MessageNode",
    "MultipartNode",
    "Node",
    "build_tree",
    "find_first",
    "walk",
]
