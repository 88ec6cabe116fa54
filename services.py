from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from errors import ValidationError
from matcher import MatcherCache, compile_pattern
from models import Category, Expense
from report import ReportCache
from storage import Storage

logger = logging.getLogger(__name__)


def _with_category(expense: Expense, category_id: Optional[int]) -> Expense:
    return Expense(
        id=expense.id,
        source=expense.source,
        description=expense.description,
        currency=expense.currency,
        amount=expense.amount,
        date=expense.date,
        type=expense.type,
        category_id=category_id,
    )


@dataclass
class CategoryChange:
    category: Category
    updated_expenses: int = 0
    changed: bool = True


class CategoryService:
    """
    Category workflows that keep stored expenses in step with the rules:
    every change re-runs matching where needed, then drops the cached
    matcher and reports for the user.
    """

    def __init__(
        self,
        storage: Storage,
        user_id: int,
        matchers: MatcherCache,
        report_cache: Optional[ReportCache] = None,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.storage = storage
        self.user_id = user_id
        self.matchers = matchers
        self.report_cache = report_cache
        self.log = log or logger

    def _invalidate(self) -> None:
        self.matchers.invalidate(self.user_id)
        if self.report_cache is not None:
            self.report_cache.invalidate(self.user_id)

    def list_all(self) -> list[Category]:
        return self.storage.get_categories(self.user_id)

    def preview(self, pattern: str) -> list[Expense]:
        """Uncategorized charges the pattern would pick up."""
        regex = compile_pattern(pattern)
        return [
            expense
            for expense in self.storage.get_expenses_without_category(self.user_id)
            if regex.search(expense.description)
        ]

    def create(self, name: str, pattern: str) -> CategoryChange:
        name = name.strip()
        if not name or not pattern:
            raise ValidationError("category must include name and a valid regex pattern")
        matches = self.preview(pattern)

        category = self.storage.create_category(self.user_id, name, pattern)
        updated = 0
        if matches:
            updated = self.storage.update_expenses(
                self.user_id, [_with_category(e, category.id) for e in matches]
            )
            if updated != len(matches):
                self.log.warning(
                    f"category_backfill_partial: id={category.id} "
                    f"expected={len(matches)} updated={updated}"
                )
        self._invalidate()
        self.log.info(f"category_backfilled: id={category.id} expenses={updated}")
        return CategoryChange(category=category, updated_expenses=updated)

    def update(
        self,
        category_id: int,
        name: Optional[str] = None,
        pattern: Optional[str] = None,
    ) -> CategoryChange:
        """
        Partial update. A new pattern re-matches this category's expenses
        and the uncategorized charges: matches move to their first matching
        category, expenses of this category that no longer match become
        uncategorized.
        """
        existing = self.storage.get_category(self.user_id, category_id)
        name = name or existing.name
        pattern = pattern or existing.pattern
        compile_pattern(pattern)

        pattern_changed = pattern != existing.pattern
        if name == existing.name and not pattern_changed:
            return CategoryChange(category=existing, changed=False)

        self.storage.update_category(self.user_id, category_id, name, pattern)
        self._invalidate()
        category = self.storage.get_category(self.user_id, category_id)
        self.log.info(f"category_updated: id={category_id} pattern_changed={pattern_changed}")
        if not pattern_changed:
            return CategoryChange(category=category)

        matcher = self.matchers.get(self.user_id)
        candidates = self.storage.get_expenses_by_category(
            self.user_id, category_id
        ) + self.storage.get_expenses_without_category(self.user_id)

        to_update = []
        for expense in candidates:
            matched_id, _ = matcher.match(expense.description)
            if matched_id is not None and matched_id != expense.category_id:
                to_update.append(_with_category(expense, matched_id))
            elif matched_id is None and expense.category_id == category_id:
                to_update.append(_with_category(expense, None))

        updated = self.storage.update_expenses(self.user_id, to_update)
        if updated:
            self._invalidate()
        return CategoryChange(category=category, updated_expenses=updated)

    def delete(self, category_id: int) -> None:
        self.storage.delete_category(self.user_id, category_id)
        self._invalidate()

    def reset(self) -> int:
        """Delete every category but the exclude one."""
        deleted = self.storage.delete_categories(self.user_id)
        self._invalidate()
        return deleted

    def assign_description(self, description: str, category_id: int) -> int:
        """
        Teach a category an exact description: the escaped text is added to
        its pattern and every expense with that description is moved to it.
        """
        category = self.storage.get_category(self.user_id, category_id)
        pattern = f"{category.pattern}|{re.escape(description)}"
        compile_pattern(pattern)
        self.storage.update_category(self.user_id, category_id, category.name, pattern)

        expenses = self.storage.search_expenses_by_description(self.user_id, description)
        updated = self.storage.update_expenses(
            self.user_id, [_with_category(e, category_id) for e in expenses]
        )
        self._invalidate()
        self.log.info(
            f"category_description_assigned: id={category_id} expenses={updated}"
        )
        return updated
