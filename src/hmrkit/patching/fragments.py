from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Protocol, Union

_HEAD_PATTERN = re.compile(r"<head[^>]*>([\s\S]*?)</head>", re.IGNORECASE)
_BODY_PATTERN = re.compile(r"<body[^>]*>([\s\S]*)</body>", re.IGNORECASE)


@dataclass(frozen=True)
class ExtractedFragment:
    body: str
    head: Optional[str] = None


class FragmentExtractor(Protocol):
    """Splits a rendered document into the parts a client patches in place."""

    def extract(self, html: str) -> Optional[ExtractedFragment]:
        ...


class RegexFragmentExtractor:
    """Finds `<head>`/`<body>` contents with regular expressions. No body, no fragment."""

    def extract(self, html: str) -> Optional[ExtractedFragment]:
        body_match = _BODY_PATTERN.search(html)
        if body_match is None or not body_match.group(1).strip():
            return None

        head_match = _HEAD_PATTERN.search(html)
        head = head_match.group(1).strip() if head_match and head_match.group(1).strip() else None
        return ExtractedFragment(body=body_match.group(1).strip(), head=head)


def extract_or_document(html: str, extractor: FragmentExtractor) -> Union[ExtractedFragment, str]:
    """Return the fragment, or the whole document when extraction fails."""
    try:
        fragment = extractor.extract(html)
    except Exception:
        return html
    return fragment if fragment is not None else html
