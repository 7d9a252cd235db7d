"""Retention rule resolution.

Turns the global settings plus a category id into the effective retention
window. ``None`` means the category is exempt ("never").
"""

from datetime import datetime, timedelta
from typing import Optional

from .schemas import CategoryRuleMode, DEFAULT_RETENTION_DAYS, RetentionSettings


def resolve_days(settings: RetentionSettings, category_id: int) -> Optional[int]:
    """Return the retention window in days for a category, or None if exempt.

    A custom rule with a missing or non-positive day count falls back to
    DEFAULT_RETENTION_DAYS, not to the configured global value, so that a
    broken rule can never select every record of the category.
    """
    rule = settings.category_rules.get(category_id)

    if rule is None or rule.mode == CategoryRuleMode.GLOBAL:
        days = settings.global_retention_days
        return days if days >= 1 else DEFAULT_RETENTION_DAYS

    if rule.mode == CategoryRuleMode.NEVER:
        return None

    return rule.days if rule.days >= 1 else DEFAULT_RETENTION_DAYS


def compute_cutoff(now: datetime, days: int) -> datetime:
    """Records created at or before the returned instant are overdue."""
    return now - timedelta(days=max(1, days))
