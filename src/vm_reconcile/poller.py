"""Post-action poller: wait for a freshly created/started VM to get an address.

A bridged VM only learns its DHCP lease some seconds after boot, so right
after ``create``/``start`` the address is polled with a bounded, fixed-wait
loop. Every attempt is preceded by the wait, including the first one, so
``n`` fruitless attempts take roughly ``n * interval`` seconds.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from vm_reconcile import constants
from vm_reconcile._logging import get_logger
from vm_reconcile.address import AddressResolver, cached_address
from vm_reconcile.liveness import LivenessProber
from vm_reconcile.registry import RegistryLoader

logger = get_logger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


class _AddressPending(Exception):
    """Attempt completed without an address; retried until attempts run out."""


class AddressPoller:
    """Bounded re-resolution of one VM's address.

    Args:
        registry: Source of fresh records (re-read on every attempt)
        liveness: Liveness prober for the live resolution step
        resolver: Address resolver for the live resolution step
        interval: Wait in seconds before each attempt
        sleep: Awaitable sleep; injected as a fake clock in tests
    """

    def __init__(
        self,
        registry: RegistryLoader,
        liveness: LivenessProber,
        resolver: AddressResolver,
        *,
        interval: float = constants.DEFAULT_POLL_INTERVAL_SECONDS,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.registry = registry
        self.liveness = liveness
        self.resolver = resolver
        self.interval = interval
        self._sleep = sleep

    async def wait_for_address(
        self,
        name: str,
        max_attempts: int = constants.DEFAULT_POLL_ATTEMPTS,
    ) -> str | None:
        """Poll until ``name`` has an address or ``max_attempts`` are used up.

        Returns:
            The address, or None if none appeared in time (not an error)

        Raises:
            ValueError: max_attempts < 1
            asyncio.CancelledError: The wait was cancelled by the caller
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

        logger.debug(
            "Polling for VM address",
            extra={"vm_name": name, "max_attempts": max_attempts, "interval": self.interval},
        )
        # tenacity only waits between attempts; the first wait is ours
        await self._sleep(self.interval)

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max_attempts),
                wait=wait_fixed(self.interval),
                retry=retry_if_exception_type(_AddressPending),
                before_sleep=before_sleep_log(logger, logging.DEBUG),
                sleep=self._sleep,
                reraise=True,
            ):
                with attempt:
                    address = await self.poll_once(name)
                    if address is None:
                        raise _AddressPending(name)
                    logger.info(
                        "VM address available",
                        extra={"vm_name": name, "address": address, "attempt": attempt.retry_state.attempt_number},
                    )
                    return address
        except _AddressPending:
            logger.info("VM address not known yet", extra={"vm_name": name, "attempts": max_attempts})
            return None

        # Unreachable: AsyncRetrying either returns or raises
        raise AssertionError("Unreachable: AsyncRetrying exhausted without exception")

    async def poll_once(self, name: str) -> str | None:
        """One attempt: fresh record, cached address, then live resolution."""
        try:
            record = await self.registry.find_record(name)
        except OSError as e:
            logger.debug("Registry read failed", extra={"vm_name": name, "error": str(e)})
            return None
        if record is None:
            logger.debug("VM record not present yet", extra={"vm_name": name})
            return None

        if address := cached_address(record):
            return address

        running = await self.liveness.is_running(record)
        return await self.resolver.resolve(record, running)
