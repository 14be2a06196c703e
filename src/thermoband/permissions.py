"""
Bluetooth radio authorization.

Desktop Bluetooth stacks (BlueZ, CoreBluetooth, WinRT) authorize scanning
implicitly, so by default the gate grants without doing anything. Embeddings
that enforce runtime permissions inject a requester coroutine.
"""

import logging
import platform
from typing import Awaitable, Callable, Optional

from .models import PermissionStatus

logger = logging.getLogger(__name__)

# Coroutine returning True when scan/connect (and location) access is granted
PermissionRequester = Callable[[], Awaitable[bool]]


class PermissionGate:
    """Requests radio authorization once and remembers the answer."""

    def __init__(self, requester: Optional[PermissionRequester] = None) -> None:
        self._requester = requester
        self._status = PermissionStatus.UNKNOWN

    @property
    def status(self) -> PermissionStatus:
        """Current authorization state."""
        return self._status

    async def request_permissions(self) -> PermissionStatus:
        """Request radio authorization.

        Only the first call does any work; later calls return the cached
        state.

        Returns:
            PermissionStatus.GRANTED or PermissionStatus.DENIED
        """
        if self._status is not PermissionStatus.UNKNOWN:
            return self._status

        if self._requester is None:
            logger.debug(
                f"No runtime Bluetooth permissions needed on {platform.system()}"
            )
            self._status = PermissionStatus.GRANTED
            return self._status

        try:
            granted = await self._requester()
        except Exception as e:
            logger.error(f"Permission request failed: {e}")
            granted = False

        self._status = (
            PermissionStatus.GRANTED if granted else PermissionStatus.DENIED
        )
        if granted:
            logger.info("Bluetooth permissions granted")
        else:
            logger.warning("Bluetooth permissions denied")
        return self._status
