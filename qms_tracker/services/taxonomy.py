"""
Module Taxonomy

Maps the free-text category column of the catalog onto the fixed set of
business modules, and the free-text record status onto compliant / issue /
pending.

Matching is an explicit ordered list of (substring, module id) pairs on the
lowercased category, first match wins. Display order is a separate property
of each module.

Usage:
    from qms_tracker.services.taxonomy import normalize_category

    normalize_category("02-Operations")   # -> Module(id="operations", ...)
    normalize_category("Misc")            # -> None (dropped from module stats)
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Module:
    id: str
    name: str
    order: int

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "order": self.order}


MODULES: dict[str, Module] = {
    m.id: m for m in (
        Module("sales", "Sales & Customer Service", 1),
        Module("operations", "Operations & Production", 2),
        Module("quality", "Quality & Audit", 3),
        Module("procurement", "Procurement & Vendors", 4),
        Module("hr", "HR & Training", 5),
        Module("rnd", "R&D & Design", 6),
        Module("management", "Management & Documentation", 7),
    )
}

# Position for modules without a display order.
UNORDERED = 99

CATEGORY_MATCHERS: tuple[tuple[str, str], ...] = (
    ("sales", "sales"),
    ("01", "sales"),
    ("operations", "operations"),
    ("02", "operations"),
    ("quality", "quality"),
    ("03", "quality"),
    ("procurement", "procurement"),
    ("04", "procurement"),
    ("hr", "hr"),
    ("05", "hr"),
    ("r&d", "rnd"),
    ("rnd", "rnd"),
    ("06", "rnd"),
    ("management", "management"),
    ("07", "management"),
)


def normalize_category(category: str | None) -> Module | None:
    """Return the module for a category, or None when nothing matches."""
    if not category:
        return None
    lower = category.lower().strip()
    for needle, module_id in CATEGORY_MATCHERS:
        if needle in lower:
            return MODULES[module_id]
    return None


def module_for_category(category: str) -> str:
    """Display name of the category's module, or the category itself."""
    module = normalize_category(category)
    return module.name if module else category


def module_order(module_id: str) -> int:
    module = MODULES.get(module_id)
    return module.order if module else UNORDERED


# ── Record status labels ─────────────────────────────────────────────────

COMPLIANT = "compliant"
ISSUE = "issue"
PENDING = "pending"

_COMPLIANT_TOKENS = ("approved", "compliant", "✅")
_ISSUE_TOKENS = ("rejected", "nc", "issue", "invalid", "❌")


def normalize_audit_status(label) -> str:
    """Classify a record status label as compliant, issue or pending.

    Compliant tokens are checked first; waiting, not started and empty labels
    fall through to pending.
    """
    lower = str(getattr(label, "value", label) or "").lower().strip()
    if any(token in lower for token in _COMPLIANT_TOKENS):
        return COMPLIANT
    if any(token in lower for token in _ISSUE_TOKENS):
        return ISSUE
    return PENDING
