"""Keyword dictionary service for Preset Sorter.

A keyword dictionary maps each category to two word lists: the bundled
``default`` words and the user's ``custom`` additions.  The reserved
``_meta`` key holds dictionary-level settings and is never a category.

Structure of ``sample_keywords.json``::

    {
      "_meta": {"version": 1, "protected": ["MIDI"]},
      "Kick": {"default": ["kick", "bassdrum"], "custom": ["thump"]},
      ...
    }

Category names are unique and case sensitive; keywords are compared
case insensitively.  Categories listed in ``_meta.protected`` cannot be
removed.  This class only edits the in-memory document; the engine
persists it after every mutation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

from .classifier import normalize_keywords

META_KEY = "_meta"


@dataclass
class KeywordService:
    """Read and edit one keyword dictionary document."""

    data: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name, entry in self.data.items():
            if name == META_KEY:
                continue
            entry.setdefault("default", [])
            entry.setdefault("custom", [])

    @property
    def meta(self) -> Dict[str, Any]:
        return self.data.setdefault(META_KEY, {})

    @property
    def protected(self) -> List[str]:
        return list(self.meta.get("protected", []))

    def categories(self) -> List[str]:
        """Category names in dictionary order (``_meta`` excluded)."""
        return [name for name in self.data if name != META_KEY]

    def keywords_for(self, category: str) -> List[str]:
        entry = self._entry(category)
        return normalize_keywords([*entry["default"], *entry["custom"]])

    def keyword_lists(self) -> Dict[str, List[str]]:
        """Merged ``default`` + ``custom`` words per category, ready for the classifier."""
        return {name: self.keywords_for(name) for name in self.categories()}

    def _entry(self, category: str) -> Dict[str, List[str]]:
        if category == META_KEY or category not in self.data:
            raise KeyError(f"Unknown category: {category}")
        return self.data[category]

    def add_keyword(self, category: str, word: str) -> bool:
        """Add ``word`` to the custom list; return ``False`` if it is already known."""
        token = word.strip().lower()
        if not token:
            raise ValueError("Keyword must not be empty")
        if token in self.keywords_for(category):
            return False
        self._entry(category)["custom"].append(token)
        return True

    def remove_keyword(self, category: str, word: str) -> bool:
        """Remove ``word`` from the category (custom list first, then defaults)."""
        token = word.strip().lower()
        entry = self._entry(category)
        for list_name in ("custom", "default"):
            kept = [w for w in entry[list_name] if w.strip().lower() != token]
            if len(kept) != len(entry[list_name]):
                entry[list_name] = kept
                return True
        return False

    def add_category(self, category: str) -> bool:
        name = category.strip()
        if not name or name == META_KEY:
            raise ValueError(f"Invalid category name: {category!r}")
        if name in self.data:
            return False
        self.data[name] = {"default": [], "custom": []}
        return True

    def remove_category(self, category: str) -> None:
        if category in self.protected:
            raise ValueError(f"Category {category!r} is protected and cannot be removed")
        self._entry(category)
        del self.data[category]

    def restore_defaults(self, bundled: Dict[str, Any]) -> None:
        """Clear every custom list and reset bundled categories to ``bundled``.

        Categories the user added are kept with their own ``default`` words.
        """
        for name in self.categories():
            self.data[name]["custom"] = []
        for name, entry in bundled.items():
            if name == META_KEY:
                self.data[META_KEY] = {**self.meta, **entry}
            else:
                self.data[name] = {"default": list(entry.get("default", [])), "custom": []}

    def to_dict(self) -> Dict[str, Any]:
        return self.data
