"""Navigation worker - feeds location fixes to a session off the caller's thread."""

import logging
import time
from typing import Callable, Optional

from utils.worker_base import BoundedQueueWorker
from .models import GpsFix, NavigationUpdate
from .session import NavigationSession

logger = logging.getLogger('georacing.nav.worker')


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class NavigationWorker(BoundedQueueWorker[NavigationUpdate]):
    """
    Runs NavigationSession.process_fix on a worker thread.

    The location provider calls submit_fix() from its callback and returns
    immediately. Each processed fix publishes its NavigationUpdate as a
    snapshot for the UI. Spoken announcements are handed to
    `on_announcement` (the voice collaborator) on the worker thread.

    While no fixes arrive the worker flags stale GPS so the UI sees the
    degraded state even if the provider goes silent. The gap is measured
    on `clock` from when the worker last handed over an accepted fix,
    never against fix timestamps, so a receiver whose clock disagrees
    with the host's is not reported as degraded.
    """

    def __init__(
        self,
        session: NavigationSession,
        on_announcement: Optional[Callable[[str], None]] = None,
        clock: Callable[[], float] = _monotonic_ms,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.session = session
        self.on_announcement = on_announcement
        self.clock = clock
        self._first_fix_at: Optional[float] = None
        self._last_good_fix_at: Optional[float] = None

    def submit_fix(self, fix: GpsFix) -> bool:
        return self.submit(fix)

    def _process_item(self, fix: GpsFix) -> NavigationUpdate:
        now = self.clock()
        if self._first_fix_at is None:
            self._first_fix_at = now

        update = self.session.process_fix(fix)
        if update.fix_accepted:
            self._last_good_fix_at = now

        if update.spoken_announcement and self.on_announcement:
            try:
                self.on_announcement(update.spoken_announcement)
            except Exception as e:
                logger.warning("Announcement callback failed: %s", e)
        return update

    def _on_idle(self):
        reference = self._last_good_fix_at
        if reference is None:
            reference = self._first_fix_at
        if reference is not None:
            self.session.check_idle(self.clock() - reference)

        latest = self.session.snapshot()
        if self.current_snapshot is None or latest is not self.current_snapshot.data:
            self._publish_snapshot(latest)
