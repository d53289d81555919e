"""Session classification and the time windows derived from it.

A ``SyncSession`` freezes "now" once at session start.  Every window the
push and pull phases use (first-sync horizon, push windows, pull cutoff) is
computed from that single instant, so a slow session cannot drift between
phases.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from healthsync.config import Settings
from healthsync.sync.entities import ALWAYS, GOAL, EntitySpec

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class SyncWindows:
    """Tunable horizons, in milliseconds.

    Attributes:
        bootstrap_horizon:   lastSync older than this makes a first sync.
        first_push_recent:   First-sync push window for food/workout/biomarker.
        first_push_goal:     First-sync push window for goals.
        first_pull:          First-sync pull lookback.
        cross_device_pull:   Minimum incremental pull lookback.
    """

    bootstrap_horizon: int = 30 * DAY_MS
    first_push_recent: int = 24 * HOUR_MS
    first_push_goal: int = 30 * DAY_MS
    first_pull: int = 7 * DAY_MS
    cross_device_pull: int = 3 * DAY_MS

    @classmethod
    def from_settings(cls, settings: Settings) -> "SyncWindows":
        return cls(
            bootstrap_horizon=settings.sync_bootstrap_horizon_days * DAY_MS,
            first_push_recent=settings.sync_first_push_window_hours * HOUR_MS,
            first_push_goal=settings.sync_first_push_goal_window_days * DAY_MS,
            first_pull=settings.sync_first_pull_window_days * DAY_MS,
            cross_device_pull=settings.sync_cross_device_pull_window_days * DAY_MS,
        )


@dataclass(frozen=True)
class SyncSession:
    """One client-triggered sync cycle.

    Attributes:
        last_sync_timestamp: Client's last successful sync, epoch millis (0 = never).
        now:                 Session start, epoch millis.
        windows:             Horizons in effect for this session.
    """

    last_sync_timestamp: int
    now: int = field(default_factory=now_ms)
    windows: SyncWindows = field(default_factory=SyncWindows)

    @property
    def is_first_sync(self) -> bool:
        return self.last_sync_timestamp < self.now - self.windows.bootstrap_horizon

    def push_cutoff(self, spec: EntitySpec) -> int | None:
        """Return the exclusive lower bound for pushing ``spec`` records.

        None means every present record is eligible.
        """
        if not self.is_first_sync:
            return self.last_sync_timestamp
        if spec.first_sync == ALWAYS:
            return None
        if spec.first_sync == GOAL:
            return self.now - self.windows.first_push_goal
        return self.now - self.windows.first_push_recent

    def effective_pull_timestamp(self) -> int:
        """The single cutoff below which remote rows are not returned."""
        if self.is_first_sync:
            return self.now - self.windows.first_pull
        return self.incremental_pull_timestamp()

    def incremental_pull_timestamp(self) -> int:
        # Always re-scans the cross-device window; clients dedupe by id
        return min(self.last_sync_timestamp, self.now - self.windows.cross_device_pull)
