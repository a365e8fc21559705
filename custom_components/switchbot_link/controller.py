"""Retry and transport fallback around every outbound device call."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from .errors import FaultKind, FinalError, TransportError, TransportProtocolError, TransportRejected
from .models import DeviceIdentity, Operation, OperationKind, RetryContext, TransportCapability

_LOGGER = logging.getLogger(__name__)


class RetryFallbackController:
    """Run an operation on the preferred transport.

    Local is tried once; any failure falls back to remote a single time when
    remote is configured. Remote retries transient failures with a fixed
    delay. Only FinalError leaves this class.
    """

    def __init__(self, local=None, remote=None, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self._local = local
        self._remote = remote
        self._sleep = sleep

    @property
    def remote_available(self) -> bool:
        return self._remote is not None and getattr(self._remote, "configured", True)

    @property
    def local_available(self) -> bool:
        return self._local is not None

    async def execute(
        self,
        identity: DeviceIdentity,
        operation: Operation,
        preference: TransportCapability,
        config,
    ) -> Any:
        if preference is not TransportCapability.REMOTE_ONLY and self.local_available:
            try:
                return await self._run(self._local, identity, operation, config)
            except TransportError as ex:
                if preference is TransportCapability.LOCAL_ONLY or not self.remote_available:
                    raise FinalError(FaultKind.TRANSPORT_UNAVAILABLE, ex) from ex
                _LOGGER.info("%s %s over BLE failed (%s); falling back to OpenAPI", identity.device_id, operation, ex)
        elif preference is TransportCapability.LOCAL_ONLY:
            raise FinalError(FaultKind.TRANSPORT_UNAVAILABLE, TransportError("no BLE adapter available"))

        if not self.remote_available:
            raise FinalError(FaultKind.TRANSPORT_UNAVAILABLE, TransportError("OpenAPI credentials not configured"))
        return await self._with_retries(identity, operation, config)

    async def _with_retries(self, identity: DeviceIdentity, operation: Operation, config) -> Any:
        ctx = RetryContext(operation, max(1, int(config.max_retries)))
        while True:
            ctx.attempts_taken += 1
            try:
                return await self._run(self._remote, identity, operation, config)
            except TransportError as ex:
                ctx.last_error = ex
                if not ex.transient:
                    raise self._terminal(ex) from ex
                if ctx.attempts_taken >= ctx.max_attempts:
                    _LOGGER.warning(
                        "%s %s failed after %d attempts: %s", identity.device_id, operation, ctx.attempts_taken, ex
                    )
                    raise FinalError(FaultKind.RETRY_EXHAUSTED, ex) from ex
                _LOGGER.debug(
                    "%s %s attempt %d/%d failed: %s; retrying in %ss",
                    identity.device_id,
                    operation,
                    ctx.attempts_taken,
                    ctx.max_attempts,
                    ex,
                    config.delay_between_retries,
                )
                await self._sleep(config.delay_between_retries)

    @staticmethod
    def _terminal(err: TransportError) -> FinalError:
        if isinstance(err, TransportRejected):
            return FinalError(FaultKind.DEVICE_FAULT, err, err.code)
        if isinstance(err, TransportProtocolError):
            return FinalError(FaultKind.MALFORMED, err)
        return FinalError(FaultKind.TRANSPORT_UNAVAILABLE, err)

    @staticmethod
    async def _run(transport, identity: DeviceIdentity, operation: Operation, config) -> Any:
        if operation.kind is OperationKind.STATUS:
            return await transport.fetch_status(identity, config)
        return await transport.send_command(identity, operation.command, config)
