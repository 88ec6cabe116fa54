import pytest

from errors import ValidationError
from matcher import CategoryMatcher, MatcherCache
from models import Category


def test_first_matching_category_wins() -> None:
    matcher = CategoryMatcher(
        [
            Category(id=1, name="Food", pattern="restaurant|food"),
            Category(id=2, name="Going out", pattern="restaurant|bar"),
        ]
    )
    assert len(matcher) == 2
    assert matcher.match("restaurant bill") == (1, "Food")
    assert matcher.match("cocktail bar") == (2, "Going out")
    assert matcher.match("salary") == (None, "")


def test_exclude_pattern_never_matches_text() -> None:
    matcher = CategoryMatcher([Category(id=3, name="🚫 Exclude", pattern="$a")])
    assert matcher.match("anything at all") == (None, "")
    assert matcher.match("") == (None, "")


class _CountingStorage:
    def __init__(self) -> None:
        self.calls = 0
        self.categories = [Category(id=1, name="Food", pattern="food")]

    def get_categories(self, user_id: int) -> list[Category]:
        self.calls += 1
        return list(self.categories)


def test_matcher_cache_rebuilds_after_invalidate() -> None:
    storage = _CountingStorage()
    cache = MatcherCache(storage)

    first = cache.get(1)
    assert cache.get(1) is first
    assert storage.calls == 1

    storage.categories.append(Category(id=2, name="Transport", pattern="taxi"))
    cache.invalidate(1)
    rebuilt = cache.get(1)
    assert rebuilt is not first
    assert rebuilt.match("taxi home") == (2, "Transport")
    assert storage.calls == 2


def test_matcher_cache_is_per_user() -> None:
    storage = _CountingStorage()
    cache = MatcherCache(storage)
    cache.get(1)
    cache.get(2)
    cache.invalidate(2)
    cache.get(1)
    assert storage.calls == 2


def test_unparseable_pattern_is_a_validation_error() -> None:
    with pytest.raises(ValidationError, match="invalid pattern") as exc:
        CategoryMatcher([Category(id=1, name="Broken", pattern="(unclosed")])
    assert exc.value.field == "pattern"
