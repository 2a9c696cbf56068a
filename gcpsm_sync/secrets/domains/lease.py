"""Single-slot lease guarding the Secret Manager transport.

The gRPC transport misbehaves when several clients with different credentials are
connected at once: payloads cross between clients and connections leak. At most one
provider instance may hold a live client per process, from construction until close.
"""
import logging
import threading
from typing import Optional

logger = logging.getLogger(__name__)


class Lease:
    """Handle for a held lease. Released exactly once."""

    def __init__(self, owner: "LeaseManager"):
        self._owner = owner
        self.released = False


class LeaseManager:
    """Process-wide single-slot lease."""

    def __init__(self):
        self._lock = threading.Lock()

    def acquire(self, blocking: bool = True, timeout: Optional[float] = None) -> Optional[Lease]:
        """
        Acquire the lease.

        Args:
            blocking: Wait for the current holder to release
            timeout: Maximum seconds to wait when blocking (None waits forever)

        Returns:
            Lease handle, or None when the lease could not be acquired
        """
        if blocking:
            acquired = self._lock.acquire(True, -1 if timeout is None else timeout)
        else:
            acquired = self._lock.acquire(False)
        if not acquired:
            return None
        logger.debug("Transport lease acquired")
        return Lease(self)

    def release(self, lease: Lease) -> None:
        if lease._owner is not self:
            raise ValueError("lease was not issued by this manager")
        if lease.released:
            raise RuntimeError("lease already released")
        lease.released = True
        self._lock.release()
        logger.debug("Transport lease released")

    def locked(self) -> bool:
        return self._lock.locked()


class NoopLeaseManager(LeaseManager):
    """Lease manager that never blocks. For tests where the transport is not real."""

    def acquire(self, blocking: bool = True, timeout: Optional[float] = None) -> Optional[Lease]:
        return Lease(self)

    def release(self, lease: Lease) -> None:
        if lease.released:
            raise RuntimeError("lease already released")
        lease.released = True

    def locked(self) -> bool:
        return False


# Shared by every provider in the process unless one is injected
DEFAULT_LEASE_MANAGER = LeaseManager()
