# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Human-readable names for detected components.

Priority (first match wins):
1. explicit component-name data attribute on the representative
2. ARIA role, unless it is a no-op role
3. most frequent non-utility class name across instances
4. semantic label for the tag, plus " Group" when it has children
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Sequence

from .capture import CapturedNode

# Checked in order on the representative's data attributes.
NAME_ATTRIBUTES = ("data-framer-name", "data-component-name")

_NOOP_ROLES = frozenset({"generic", "presentation", "none"})

TAG_LABELS: dict[str, str] = {
    "nav": "Navigation",
    "header": "Header",
    "footer": "Footer",
    "main": "Main",
    "section": "Section",
    "article": "Article",
    "aside": "Sidebar",
    "ul": "List",
    "ol": "Ordered List",
    "li": "List Item",
    "button": "Button",
    "a": "Link",
    "form": "Form",
    "input": "Input",
    "select": "Select",
    "table": "Table",
    "tr": "Table Row",
    "td": "Table Cell",
    "div": "Container",
    "span": "Span",
}

# ---------------------------------------------------------------------------
# Utility-class filter
# ---------------------------------------------------------------------------

_HASHED_CLASS_RE = re.compile(r"^[a-z]{1,4}-[a-z0-9]{4,}$", re.IGNORECASE)  # css-1a2b3c, sc-abcd
_UTILITY_PREFIX_RE = re.compile(r"^(p|m|w|h|bg|text|flex|grid|gap|rounded|border|shadow|opacity|z)-")


def is_utility_class(cls: str) -> bool:
    """True for generated or single-property classes that say nothing about the component."""
    if len(cls) <= 2:
        return True
    if _HASHED_CLASS_RE.match(cls):
        return True
    return bool(_UTILITY_PREFIX_RE.match(cls))


# ---------------------------------------------------------------------------
# Cleaning
# ---------------------------------------------------------------------------

_PREFIX_RE = re.compile(r"^(css|styles?|component)-", re.IGNORECASE)
_SEPARATOR_RE = re.compile(r"[-_]+")
_CAMEL_RE = re.compile(r"([a-z])([A-Z])")


def capitalize(word: str) -> str:
    return word[:1].upper() + word[1:].lower()


def clean_name(raw: str) -> str:
    """``component-productCard_item`` → ``Product Card Item``."""
    name = _PREFIX_RE.sub("", raw)
    name = _SEPARATOR_RE.sub(" ", name)
    name = _CAMEL_RE.sub(r"\1 \2", name)
    return " ".join(capitalize(w) for w in name.split(" ") if w)


def tag_label(tag: str) -> str:
    return TAG_LABELS.get(tag, capitalize(tag))


# ---------------------------------------------------------------------------
# Name selection
# ---------------------------------------------------------------------------


def best_class_name(instances: Sequence[CapturedNode]) -> str | None:
    """Most frequent non-utility class across *instances*; first seen wins ties."""
    counts: Counter[str] = Counter()
    for node in instances:
        for cls in node.class_names:
            if not is_utility_class(cls):
                counts[cls] += 1
    if not counts:
        return None
    return counts.most_common(1)[0][0]


def component_name(instances: Sequence[CapturedNode]) -> str:
    """Derive a component name from its instances (``instances[0]`` is the representative)."""
    representative = instances[0]

    for attr in NAME_ATTRIBUTES:
        explicit = representative.data_attributes.get(attr)
        if explicit and (cleaned := clean_name(explicit)):
            return cleaned

    role = (representative.aria_role or "").strip()
    if role and role.lower() not in _NOOP_ROLES:
        return clean_name(role)

    cls = best_class_name(instances)
    if cls:
        return clean_name(cls)

    label = tag_label(representative.tag)
    return f"{label} Group" if representative.children else label


def framer_type_name(type_name: str) -> str:
    """``ProductCard`` → ``Product Card``, ``nav-link`` → ``nav link`` (case kept)."""
    name = _CAMEL_RE.sub(r"\1 \2", type_name)
    return _SEPARATOR_RE.sub(" ", name).strip()
