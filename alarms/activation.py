from __future__ import annotations

import logging
from typing import Optional

logger = logging.getLogger(__name__)


class ActivationRegistry:
    """Tracks which alarm session, if any, is currently being presented.

    One registry is owned by the application shell and handed to every
    session. Only the owner that acquired the flag can clear it.
    """

    def __init__(self) -> None:
        self._owner: Optional[object] = None

    @property
    def active(self) -> bool:
        return self._owner is not None

    @property
    def owner(self) -> Optional[object]:
        return self._owner

    def try_acquire(self, owner: object) -> bool:
        if self._owner is not None:
            return False
        self._owner = owner
        return True

    def release(self, owner: object) -> bool:
        if self._owner is not owner:
            return False
        self._owner = None
        logger.debug("Alarm activation released")
        return True
