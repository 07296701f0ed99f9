from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol, Union

from hmrkit.preservation.dom import FIELD_TAGS, PageDocument, PageNode

STANDALONE_KEY = "__standalone__"

FieldValue = Union[str, bool]
FormSnapshot = Dict[str, Dict[str, FieldValue]]


@dataclass
class ElementScroll:
    selector: str
    scroll_top: int
    scroll_left: int


@dataclass
class ScrollSnapshot:
    x: int = 0
    y: int = 0
    elements: List[ElementScroll] = field(default_factory=list)


class FrameScheduler(Protocol):
    """Runs a callback at the next rendering opportunity."""

    def request_frame(self, callback: Callable[[], None]) -> None:
        ...


class QueuedFrameScheduler:
    """Holds callbacks until `flush` is called, one flush per rendered frame."""

    def __init__(self) -> None:
        self._pending: List[Callable[[], None]] = []

    def request_frame(self, callback: Callable[[], None]) -> None:
        self._pending.append(callback)

    def flush(self) -> int:
        callbacks, self._pending = self._pending, []
        for callback in callbacks:
            callback()
        return len(callbacks)

    def __len__(self) -> int:
        return len(self._pending)


def _field_key(node: PageNode, positional: str) -> str:
    return node.name or node.id or positional


def _field_value(node: PageNode) -> FieldValue:
    if node.is_toggle:
        return node.checked
    return node.value if node.value is not None else ""


def _apply_value(node: PageNode, value: FieldValue) -> None:
    if node.is_toggle:
        node.checked = value is True
    else:
        node.value = str(value)


def capture_forms(document: PageDocument) -> FormSnapshot:
    """Snapshot every form field. Fields outside any form go under `__standalone__`."""
    snapshot: FormSnapshot = {}
    try:
        for form_index, form in enumerate(document.forms()):
            form_data: Dict[str, FieldValue] = {}
            snapshot[form.id or f"form-{form_index}"] = form_data
            for field_index, node in enumerate(form.elements(*FIELD_TAGS)):
                form_data[_field_key(node, f"input-{form_index}-{field_index}")] = _field_value(node)

        standalone = [node for node in document.fields() if node.closest("form") is None]
        if standalone:
            standalone_data: Dict[str, FieldValue] = {}
            snapshot[STANDALONE_KEY] = standalone_data
            for field_index, node in enumerate(standalone):
                standalone_data[_field_key(node, f"standalone-{field_index}")] = _field_value(node)
    except (AttributeError, TypeError, ValueError):
        return snapshot

    return snapshot


def _find_form(document: PageDocument, form_key: str) -> Optional[PageNode]:
    form = document.get_element_by_id(form_key)
    if form is not None and form.tag == "form":
        return form

    if form_key.startswith("form-"):
        try:
            index = int(form_key[len("form-"):])
        except ValueError:
            return None
        forms = document.forms()
        if 0 <= index < len(forms):
            return forms[index]
    return None


def _find_field(scope: List[PageNode], key: str, positional_prefix: str) -> Optional[PageNode]:
    for node in scope:
        if node.name == key:
            return node
    for node in scope:
        if node.id == key:
            return node
    if key.startswith(positional_prefix):
        try:
            index = int(key.rsplit("-", 1)[-1])
        except ValueError:
            return None
        if 0 <= index < len(scope):
            return scope[index]
    return None


def restore_forms(document: PageDocument, snapshot: FormSnapshot) -> int:
    """Reapply captured values using the capture-time keys. Returns how many fields were set."""
    restored = 0
    for form_key, form_data in snapshot.items():
        if not form_data:
            continue

        if form_key == STANDALONE_KEY:
            scope = [node for node in document.fields() if node.closest("form") is None]
            prefix = "standalone-"
        else:
            form = _find_form(document, form_key)
            if form is None:
                continue
            scope = form.elements(*FIELD_TAGS)
            prefix = "input-"

        for key, value in form_data.items():
            node = _find_field(scope, key, prefix)
            if node is None:
                continue
            _apply_value(node, value)
            restored += 1

    return restored


def _selector_for(node: PageNode) -> str:
    if node.id:
        return f"#{node.id}"
    if node.class_names:
        return f".{node.class_names[0]}"
    return node.tag


def _select(document: PageDocument, selector: str) -> Optional[PageNode]:
    if selector.startswith("#"):
        return document.get_element_by_id(selector[1:])
    if selector.startswith("."):
        class_name = selector[1:]
        return document.root.find(lambda node: class_name in node.class_names)
    return document.root.find(lambda node: node.tag == selector)


def capture_scroll(document: PageDocument) -> ScrollSnapshot:
    snapshot = ScrollSnapshot(x=document.scroll_x, y=document.scroll_y)
    for node in document.root.elements():
        if node.has_overflow and (node.scroll_top > 0 or node.scroll_left > 0):
            snapshot.elements.append(
                ElementScroll(selector=_selector_for(node), scroll_top=node.scroll_top, scroll_left=node.scroll_left)
            )
    return snapshot


def restore_scroll(document: PageDocument, snapshot: ScrollSnapshot, scheduler: FrameScheduler) -> None:
    """Restore scroll offsets on the next frame, once the patched layout exists."""

    def apply() -> None:
        document.scroll_to(snapshot.x, snapshot.y)
        for entry in snapshot.elements:
            node = _select(document, entry.selector)
            if node is not None:
                node.scroll_top = entry.scroll_top
                node.scroll_left = entry.scroll_left

    scheduler.request_frame(apply)
