"""Staggered eligibility thresholds for normal withdrawals."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict

from .errors import ConfigurationError
from .roles import Role

CHILD_TO_PARENT_GAP = timedelta(days=365)
PARENT_TO_OBSERVER_GAP = timedelta(days=730)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class EligibilitySchedule:
    child_threshold: datetime
    parent_threshold: datetime
    observer_threshold: datetime

    @classmethod
    def build(
        cls,
        *,
        created_at: datetime,
        child_threshold: datetime,
        parent_threshold: datetime,
        observer_threshold: datetime,
    ) -> EligibilitySchedule:
        """Validate the thresholds against the creation time and freeze them.

        Each bound is strict: the child threshold must be after creation, the
        parent threshold more than 365 days after the child threshold, and the
        observer threshold more than 730 days after the parent threshold.
        """
        created_at = as_utc(created_at)
        child = as_utc(child_threshold)
        parent = as_utc(parent_threshold)
        observer = as_utc(observer_threshold)

        if not child > created_at:
            raise ConfigurationError(
                f"child threshold {child.isoformat()} must be after creation time {created_at.isoformat()}",
                bound="child_threshold",
                minimum_gap=timedelta(0),
            )
        if not parent > child + CHILD_TO_PARENT_GAP:
            raise ConfigurationError(
                f"parent threshold must be more than {CHILD_TO_PARENT_GAP.days} days after the child threshold",
                bound="parent_threshold",
                minimum_gap=CHILD_TO_PARENT_GAP,
            )
        if not observer > parent + PARENT_TO_OBSERVER_GAP:
            raise ConfigurationError(
                f"observer threshold must be more than {PARENT_TO_OBSERVER_GAP.days} days after the parent threshold",
                bound="observer_threshold",
                minimum_gap=PARENT_TO_OBSERVER_GAP,
            )
        return cls(child_threshold=child, parent_threshold=parent, observer_threshold=observer)

    def threshold_for(self, role: Role) -> datetime:
        thresholds = self.thresholds()
        if role not in thresholds:
            raise KeyError(f"No eligibility threshold for role {role.value}")
        return thresholds[role]

    def is_eligible(self, role: Role, now: datetime) -> bool:
        if role == Role.UNAUTHORIZED:
            return False
        return as_utc(now) > self.threshold_for(role)

    def thresholds(self) -> Dict[Role, datetime]:
        return {
            Role.CHILD: self.child_threshold,
            Role.PARENT: self.parent_threshold,
            Role.OBSERVER: self.observer_threshold,
        }
