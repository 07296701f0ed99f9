"""
Best-effort reads of component state from framework internals.

The internal shapes walked here are not public API and change between
framework versions, so every access is a structural check and every extractor
returns an empty result rather than raising.
"""

from __future__ import annotations

import datetime
import re
from typing import Any, Dict, List, Mapping, Optional, Protocol

from hmrkit.preservation.dom import PageDocument, PageNode

ExtractedState = Dict[str, Any]

MAX_FIBER_DEPTH = 50
MAX_HOOKS = 20
MAX_VALUE_DEPTH = 8

REACT_STATE_PROPS = ("value", "checked", "selected", "count", "isOpen", "activeTab")
VUE_PROXY_KEYS = ("count", "isOpen", "activeTab", "selectedItem")

_MISSING = object()


def read_field(obj: Any, name: str) -> Any:
    """Read a key from a mapping or an attribute from an object; missing -> sentinel."""
    if isinstance(obj, Mapping):
        return obj.get(name, _MISSING)
    return getattr(obj, name, _MISSING)


def is_primitive_or_simple(value: Any, depth: int = 0) -> bool:
    """True for JSON-like values: primitives, dates, patterns, and lists/dicts of them."""
    if depth > MAX_VALUE_DEPTH:
        return False
    if value is None or isinstance(value, (bool, int, float, str)):
        return True
    if isinstance(value, (datetime.date, datetime.datetime, re.Pattern)):
        return True
    if isinstance(value, (list, tuple)):
        return all(is_primitive_or_simple(item, depth + 1) for item in value)
    if type(value) is dict:
        return all(isinstance(key, str) and is_primitive_or_simple(item, depth + 1) for key, item in value.items())
    return False


class StateExtractor(Protocol):
    framework: str

    def extract(self, document: PageDocument) -> ExtractedState:
        ...


class ReactFiberExtractor:
    """Walks the fiber tree attached to the container (or the first element that carries one)."""

    framework = "react"

    def extract(self, document: PageDocument) -> ExtractedState:
        state: ExtractedState = {}
        try:
            fiber = self._find_root_fiber(document.body)
            if fiber is not None:
                self._walk(fiber, state, 0, set())
        except Exception:
            return {}
        return state

    def _find_root_fiber(self, container: PageNode) -> Any:
        for key, root in container.internals.items():
            if key.startswith(("__reactContainer", "_reactRootContainer")):
                current = read_field(root, "current")
                if current is _MISSING or current is None:
                    current = read_field(read_field(root, "_internalRoot"), "current")
                return None if current is _MISSING else current
            if key.startswith("__reactFiber"):
                return root

        for node in container.elements():
            for key, fiber in node.internals.items():
                if key.startswith("__reactFiber"):
                    return fiber
        return None

    def _walk(self, fiber: Any, state: ExtractedState, depth: int, seen: set) -> None:
        # Siblings are walked iteratively at the same depth; children go one deeper.
        while fiber is not None and fiber is not _MISSING and depth <= MAX_FIBER_DEPTH:
            if id(fiber) in seen:
                return
            seen.add(id(fiber))
            self._read_hooks(fiber, state)
            self._read_props(fiber, state)

            child = read_field(fiber, "child")
            if child is not _MISSING and child is not None:
                self._walk(child, state, depth + 1, seen)

            fiber = read_field(fiber, "sibling")

    @staticmethod
    def _read_hooks(fiber: Any, state: ExtractedState) -> None:
        hook = read_field(fiber, "memoizedState")
        index = 0
        while hook is not _MISSING and hook is not None and index < MAX_HOOKS:
            value = read_field(hook, "memoizedState")
            if value is not _MISSING and value is not None and value is not hook and not callable(value):
                if is_primitive_or_simple(value):
                    state[f"state_{index}"] = value
            hook = read_field(hook, "next")
            index += 1

    @staticmethod
    def _read_props(fiber: Any, state: ExtractedState) -> None:
        props = read_field(fiber, "memoizedProps")
        if props is _MISSING or props is None:
            return
        for key in REACT_STATE_PROPS:
            value = read_field(props, key)
            if value is not _MISSING and value is not None and is_primitive_or_simple(value):
                state[key] = value


class VueComponentExtractor:
    """Reads `data` and well-known proxy refs from the first element owned by a Vue component."""

    framework = "vue"

    def extract(self, document: PageDocument) -> ExtractedState:
        state: ExtractedState = {}
        try:
            component = next(
                (
                    node.internals["__vueParentComponent"]
                    for node in document.body.elements()
                    if node.internals.get("__vueParentComponent") is not None
                ),
                None,
            )
            if component is None:
                return state

            proxy = read_field(component, "proxy")
            if proxy is _MISSING or proxy is None:
                return state

            data = read_field(component, "data")
            if isinstance(data, Mapping):
                for key, value in data.items():
                    if not str(key).startswith(("_", "$")) and is_primitive_or_simple(value):
                        state[key] = value

            for key in VUE_PROXY_KEYS:
                value = read_field(proxy, key)
                if value is not _MISSING and is_primitive_or_simple(value):
                    state[key] = value
        except Exception:
            return {}
        return state


class SvelteContextExtractor:
    """Reads the indexed `$$.ctx` array of the component registered on the window."""

    framework = "svelte"
    global_name = "__SVELTE_COMPONENT__"

    def extract(self, document: PageDocument) -> ExtractedState:
        state: ExtractedState = {}
        try:
            component = document.globals.get(self.global_name)
            internals = read_field(component, "$$") if component is not None else _MISSING
            ctx = read_field(internals, "ctx") if internals not in (_MISSING, None) else _MISSING
            if not isinstance(ctx, (list, tuple)):
                return state

            for index, value in enumerate(ctx):
                if value is None or callable(value) or _is_svelte_internal(value):
                    continue
                if is_primitive_or_simple(value):
                    state[f"state_{index}"] = value
        except Exception:
            return {}
        return state


def _is_svelte_internal(value: Any) -> bool:
    if not isinstance(value, Mapping):
        return False
    return bool(value.get("$$") or value.get("$$scope"))


class HtmlStateExtractor:
    """Plain DOM state: named form fields, `<details>` open flags, contenteditable text."""

    framework = "html"

    def extract(self, document: PageDocument) -> ExtractedState:
        state: ExtractedState = {}
        try:
            container = document.body
            for index, form in enumerate(container.elements("form")):
                form_data: Dict[str, Any] = {}
                for node in form.elements("input", "textarea", "select"):
                    key = node.name or node.id
                    if not key:
                        continue
                    form_data[key] = node.checked if node.is_toggle else (node.value or "")
                if form_data:
                    state[form.id or f"form_{index}"] = form_data

            for index, details in enumerate(container.elements("details")):
                state[f"{details.id or f'details_{index}'}_open"] = details.open

            editables = [
                node for node in container.elements() if node.get_attribute("contenteditable") == "true"
            ]
            for index, editable in enumerate(editables):
                state[f"{editable.id or f'editable_{index}'}_content"] = editable.text_content
        except Exception:
            return {}
        return state


DEFAULT_EXTRACTORS: List[StateExtractor] = [
    HtmlStateExtractor(),
    SvelteContextExtractor(),
    VueComponentExtractor(),
    ReactFiberExtractor(),
]


def extract_all_state(document: PageDocument, extractors: Optional[List[StateExtractor]] = None) -> ExtractedState:
    """Merge every extractor's result; later extractors win on key clashes."""
    merged: ExtractedState = {}
    for extractor in extractors if extractors is not None else DEFAULT_EXTRACTORS:
        merged.update(extractor.extract(document))
    return merged


def state_to_props(extracted: Mapping[str, Any]) -> Dict[str, Any]:
    """Rename extracted keys to the `initial*` props a page accepts on re-mount."""
    props: Dict[str, Any] = {}
    for key, value in extracted.items():
        prop_name = re.sub(r"^state_", "", key)
        if key == "count" or prop_name == "0":
            props["initialCount"] = value
        elif key in ("isOpen", "open"):
            props["initialIsOpen"] = value
        elif key == "activeTab":
            props["initialActiveTab"] = value
        else:
            props[f"initial{prop_name[:1].upper()}{prop_name[1:]}"] = value
    return props
