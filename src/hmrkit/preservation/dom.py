"""
A small live model of a browser page.

Markup is parsed into PageNode trees; nodes also carry the mutable state a
browser keeps outside the markup (field values, checked flags, scroll offsets)
and any framework internals attached to elements.
"""

from __future__ import annotations

from html import escape
from html.parser import HTMLParser
from typing import Any, Callable, Dict, Iterator, List, Optional

VOID_ELEMENTS = frozenset(
    {
        "area", "base", "br", "col", "embed", "hr", "img", "input",
        "link", "meta", "param", "source", "track", "wbr",
    }
)
FIELD_TAGS = ("input", "textarea", "select")
TEXT_NODE = "#text"
DOCUMENT_NODE = "#document"


class PageNode:
    """Element or text node with live form and scroll state."""

    def __init__(
        self,
        tag: str,
        attributes: Optional[Dict[str, Optional[str]]] = None,
        text: str = "",
    ) -> None:
        self.tag = tag.lower()
        self.attributes: Dict[str, Optional[str]] = dict(attributes or {})
        self.text = text
        self.children: List[PageNode] = []
        self.parent: Optional[PageNode] = None

        self.value: Optional[str] = None
        self.checked = False
        self.selected = False
        self.open = False
        self.scroll_top = 0
        self.scroll_left = 0
        self.scroll_height = 0
        self.client_height = 0
        self.scroll_width = 0
        self.client_width = 0
        self.internals: Dict[str, Any] = {}

    # -- attributes -------------------------------------------------------

    def get_attribute(self, name: str) -> Optional[str]:
        return self.attributes.get(name)

    def has_attribute(self, name: str) -> bool:
        return name in self.attributes

    @property
    def id(self) -> str:
        return self.attributes.get("id") or ""

    @property
    def name(self) -> str:
        return self.attributes.get("name") or ""

    @property
    def type(self) -> str:
        if self.tag == "input":
            return (self.attributes.get("type") or "text").lower()
        return self.tag

    @property
    def class_names(self) -> List[str]:
        return (self.attributes.get("class") or "").split()

    @property
    def is_element(self) -> bool:
        return self.tag not in (TEXT_NODE, DOCUMENT_NODE)

    @property
    def is_toggle(self) -> bool:
        return self.tag == "input" and self.type in ("checkbox", "radio")

    # -- tree -------------------------------------------------------------

    def append(self, child: PageNode) -> PageNode:
        child.parent = self
        self.children.append(child)
        return child

    def replace_children(self, children: List[PageNode]) -> None:
        for child in self.children:
            child.parent = None
        self.children = []
        for child in children:
            self.append(child)

    def iter(self) -> Iterator[PageNode]:
        """Depth-first, document order, excluding this node."""
        for child in self.children:
            yield child
            yield from child.iter()

    def elements(self, *tags: str) -> List[PageNode]:
        wanted = {tag.lower() for tag in tags}
        return [node for node in self.iter() if node.is_element and (not wanted or node.tag in wanted)]

    def find(self, predicate: Callable[[PageNode], bool]) -> Optional[PageNode]:
        for node in self.iter():
            if node.is_element and predicate(node):
                return node
        return None

    def get_element_by_id(self, element_id: str) -> Optional[PageNode]:
        if not element_id:
            return None
        return self.find(lambda node: node.id == element_id)

    def closest(self, tag: str) -> Optional[PageNode]:
        current = self.parent
        while current is not None:
            if current.tag == tag:
                return current
            current = current.parent
        return None

    @property
    def text_content(self) -> str:
        if self.tag == TEXT_NODE:
            return self.text
        return "".join(child.text_content for child in self.children)

    @text_content.setter
    def text_content(self, value: str) -> None:
        self.replace_children([PageNode(TEXT_NODE, text=value)])

    # -- live state -------------------------------------------------------

    def reset(self) -> None:
        """Return form fields under (and including) this node to their markup defaults."""
        for node in [self, *self.iter()]:
            node._apply_defaults()

    def _apply_defaults(self) -> None:
        if self.tag == "input":
            self.value = self.attributes.get("value") or ""
            self.checked = "checked" in self.attributes
        elif self.tag == "textarea":
            self.value = self.text_content
        elif self.tag == "option":
            self.selected = "selected" in self.attributes
        elif self.tag == "details":
            self.open = "open" in self.attributes
        elif self.tag == "select":
            options = self.elements("option")
            chosen = next((option for option in options if "selected" in option.attributes), None)
            if chosen is None and options:
                chosen = options[0]
            self.value = _option_value(chosen) if chosen is not None else ""

    @property
    def has_overflow(self) -> bool:
        return self.scroll_height > self.client_height or self.scroll_width > self.client_width

    def to_html(self) -> str:
        if self.tag == TEXT_NODE:
            return escape(self.text, quote=False)
        inner = "".join(child.to_html() for child in self.children)
        if self.tag == DOCUMENT_NODE:
            return inner

        attrs = "".join(
            f" {key}" if value is None else f' {key}="{escape(value)}"' for key, value in self.attributes.items()
        )
        if self.tag in VOID_ELEMENTS:
            return f"<{self.tag}{attrs}>"
        return f"<{self.tag}{attrs}>{inner}</{self.tag}>"

    def __repr__(self) -> str:
        if self.tag == TEXT_NODE:
            return f"PageNode(#text {self.text[:20]!r})"
        ident = f"#{self.id}" if self.id else ""
        return f"PageNode(<{self.tag}{ident}>)"


def _option_value(option: PageNode) -> str:
    value = option.attributes.get("value")
    return value if value is not None else option.text_content.strip()


class PageDocument:
    """A parsed page plus window-level state."""

    def __init__(self, root: PageNode) -> None:
        self.root = root
        self.scroll_x = 0
        self.scroll_y = 0
        self.globals: Dict[str, Any] = {}

    @property
    def head(self) -> Optional[PageNode]:
        return self.root.find(lambda node: node.tag == "head")

    @property
    def body(self) -> PageNode:
        return self.root.find(lambda node: node.tag == "body") or self.root

    def forms(self) -> List[PageNode]:
        return self.root.elements("form")

    def fields(self) -> List[PageNode]:
        return self.root.elements(*FIELD_TAGS)

    def get_element_by_id(self, element_id: str) -> Optional[PageNode]:
        return self.root.get_element_by_id(element_id)

    def scroll_to(self, x: int, y: int) -> None:
        self.scroll_x = x
        self.scroll_y = y

    def replace_body(self, html: str) -> None:
        nodes = parse_fragment(html)
        for node in nodes:
            for descendant in [node, *node.iter()]:
                descendant._apply_defaults()
        self.body.replace_children(nodes)

    def replace_head(self, html: str) -> None:
        head = self.head
        if head is None:
            return
        head.replace_children(parse_fragment(html))

    def to_html(self) -> str:
        return self.root.to_html()


class _TreeBuilder(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.root = PageNode(DOCUMENT_NODE)
        self._stack: List[PageNode] = [self.root]

    def handle_starttag(self, tag: str, attrs: List[tuple]) -> None:
        node = self._stack[-1].append(PageNode(tag, dict(attrs)))
        if node.tag not in VOID_ELEMENTS:
            self._stack.append(node)

    def handle_startendtag(self, tag: str, attrs: List[tuple]) -> None:
        self._stack[-1].append(PageNode(tag, dict(attrs)))

    def handle_endtag(self, tag: str) -> None:
        tag = tag.lower()
        for index in range(len(self._stack) - 1, 0, -1):
            if self._stack[index].tag == tag:
                del self._stack[index:]
                return

    def handle_data(self, data: str) -> None:
        if data:
            self._stack[-1].append(PageNode(TEXT_NODE, text=data))


def _build(html: str) -> PageNode:
    builder = _TreeBuilder()
    builder.feed(html)
    builder.close()
    return builder.root


def parse_html(html: str) -> PageDocument:
    """Parse a full page; form fields start at their markup defaults."""
    root = _build(html)
    root.reset()
    return PageDocument(root)


def parse_fragment(html: str) -> List[PageNode]:
    root = _build(html)
    nodes = list(root.children)
    root.replace_children([])
    return nodes
