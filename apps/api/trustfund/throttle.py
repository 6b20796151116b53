"""One-per-day cooldown on emergency withdrawals for the child and parent tiers."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, Optional

from .roles import Role
from .schedule import as_utc

COOLDOWN = timedelta(seconds=86400)
THROTTLED_TIERS = (Role.CHILD, Role.PARENT)


class WithdrawalThrottle:
    def __init__(
        self,
        *,
        last_child_withdrawal: Optional[datetime] = None,
        last_parent_withdrawal: Optional[datetime] = None,
    ) -> None:
        self._last: Dict[Role, Optional[datetime]] = {
            Role.CHILD: as_utc(last_child_withdrawal) if last_child_withdrawal else None,
            Role.PARENT: as_utc(last_parent_withdrawal) if last_parent_withdrawal else None,
        }

    def _require_tier(self, tier: Role) -> None:
        if tier not in THROTTLED_TIERS:
            raise KeyError(f"{tier.value} has no emergency withdrawal tier")

    def last_withdrawal(self, tier: Role) -> Optional[datetime]:
        self._require_tier(tier)
        return self._last[tier]

    def available_after(self, tier: Role) -> Optional[datetime]:
        """The instant after which the next withdrawal is allowed, or None if never used."""
        last = self.last_withdrawal(tier)
        return last + COOLDOWN if last is not None else None

    def can_withdraw(self, tier: Role, now: datetime) -> bool:
        boundary = self.available_after(tier)
        return boundary is None or as_utc(now) > boundary

    def record_withdrawal(self, tier: Role, now: datetime) -> Optional[datetime]:
        """Stamp ``now`` for ``tier`` and return the previous stamp for rollback."""
        previous = self.last_withdrawal(tier)
        self._last[tier] = as_utc(now)
        return previous

    def restore(self, tier: Role, previous: Optional[datetime]) -> None:
        self._require_tier(tier)
        self._last[tier] = previous
