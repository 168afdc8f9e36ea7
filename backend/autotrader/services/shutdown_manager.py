"""
Graceful Shutdown Manager

Counts trade executions that are between exchange submission and ledger
write, so shutdown can wait for them instead of cutting a trade in half.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from autotrader.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class ShutdownManager:
    """
    Usage:
        async with shutdown_manager.order_in_flight():
            await execute_trade(...)

        # When shutting down
        await shutdown_manager.prepare_shutdown(timeout=30)
    """

    def __init__(self):
        self._shutting_down = False
        self._in_flight_count = 0
        self._lock = asyncio.Lock()
        self._drained = asyncio.Event()
        self._shutdown_requested_at: Optional[datetime] = None

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def in_flight_count(self) -> int:
        return self._in_flight_count

    async def _enter(self):
        async with self._lock:
            if self._shutting_down:
                raise ConfigurationError("Service is shutting down")
            self._in_flight_count += 1

    async def _exit(self):
        async with self._lock:
            self._in_flight_count = max(0, self._in_flight_count - 1)
            if self._shutting_down and self._in_flight_count == 0:
                self._drained.set()

    class OrderInFlight:
        """Context manager for tracking an in-flight trade execution"""
        def __init__(self, manager: "ShutdownManager"):
            self.manager = manager

        async def __aenter__(self):
            await self.manager._enter()
            return self

        async def __aexit__(self, exc_type, exc_val, exc_tb):
            await self.manager._exit()
            return False

    def order_in_flight(self) -> "OrderInFlight":
        return self.OrderInFlight(self)

    async def prepare_shutdown(self, timeout: float = 30.0) -> dict:
        """
        Refuse new trades and wait for in-flight ones to finish.

        Returns:
            dict with ready (bool), in_flight_count and waited_seconds
        """
        self._shutting_down = True
        self._shutdown_requested_at = datetime.utcnow()
        self._drained.clear()

        if self._in_flight_count == 0:
            logger.info("No in-flight orders - ready for shutdown")
            return {"ready": True, "in_flight_count": 0, "waited_seconds": 0.0}

        logger.info(f"Waiting up to {timeout}s for {self._in_flight_count} in-flight orders...")
        try:
            await asyncio.wait_for(self._drained.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Shutdown timeout after {timeout}s - {self._in_flight_count} orders still in-flight")
            return {"ready": False, "in_flight_count": self._in_flight_count, "waited_seconds": timeout}

        waited = (datetime.utcnow() - self._shutdown_requested_at).total_seconds()
        logger.info(f"All in-flight orders completed after {waited:.1f}s")
        return {"ready": True, "in_flight_count": 0, "waited_seconds": waited}

    def reset(self):
        """Accept trades again (used after a cancelled shutdown and in tests)."""
        self._shutting_down = False
        self._shutdown_requested_at = None
        self._drained.clear()

    def get_status(self) -> dict:
        return {
            "shutting_down": self._shutting_down,
            "in_flight_count": self._in_flight_count,
        }


# Global singleton instance
shutdown_manager = ShutdownManager()
