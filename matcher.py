from __future__ import annotations

import re
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Optional, Protocol

from errors import ValidationError

if TYPE_CHECKING:  # pragma: no cover
    from storage import Storage


def compile_pattern(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ValidationError(f"invalid pattern: {exc}", field="pattern") from exc


class CategoryLike(Protocol):
    id: int
    name: str
    pattern: str


@dataclass(frozen=True)
class _Rule:
    category_id: int
    name: str
    regex: re.Pattern[str]


class CategoryMatcher:
    """
    Ordered regex rules for one user. Immutable once built: callers that
    change categories build a new matcher instead of editing this one.
    Descriptions are expected to be lowercased by the caller.
    """

    def __init__(self, categories: Iterable[CategoryLike]) -> None:
        self._rules: tuple[_Rule, ...] = tuple(
            _Rule(category.id, category.name, compile_pattern(category.pattern))
            for category in categories
        )

    def __len__(self) -> int:
        return len(self._rules)

    def match(self, description: str) -> tuple[Optional[int], str]:
        for rule in self._rules:
            if rule.regex.search(description):
                return rule.category_id, rule.name
        return None, ""


class MatcherCache:
    """Per-user matchers, rebuilt lazily after invalidate()."""

    def __init__(self, storage: "Storage") -> None:
        self._storage = storage
        self._matchers: dict[int, CategoryMatcher] = {}
        self._generations: dict[int, int] = {}
        self._lock = threading.Lock()

    def get(self, user_id: int) -> CategoryMatcher:
        with self._lock:
            matcher = self._matchers.get(user_id)
            generation = self._generations.get(user_id, 0)
        if matcher is not None:
            return matcher
        matcher = CategoryMatcher(self._storage.get_categories(user_id))
        with self._lock:
            # an invalidate() during the rebuild makes this snapshot stale
            if self._generations.get(user_id, 0) == generation:
                self._matchers[user_id] = matcher
        return matcher

    def invalidate(self, user_id: int) -> None:
        with self._lock:
            self._matchers.pop(user_id, None)
            self._generations[user_id] = self._generations.get(user_id, 0) + 1
