"""Deterministic call teardown."""

import asyncio
import logging

from peercall.session import ActiveCall

logger = logging.getLogger(__name__)


class SessionCleanup:
    """Releases every resource of a call attempt, exactly once."""

    async def teardown(self, call: ActiveCall | None, reason: str) -> bool:
        """Dispose ``call``.

        Closes the negotiation session, stops local media, releases remote
        media, disconnects the relay and cancels the call's background tasks
        (except the task running this teardown). Safe to call any number of
        times and with no call at all.

        Args:
            call: Call to dispose, or None
            reason: Why the call ended (for logging)

        Returns:
            True if this invocation released the call, False if it was a no-op
        """
        if call is None or call.disposed:
            return False

        call.disposed = True
        logger.info("Tearing down call", extra={"call_id": call.call_id, "reason": reason})

        negotiation, call.negotiation = call.negotiation, None
        local_media, call.local_media = call.local_media, None
        remote_media, call.remote_media = call.remote_media, None
        transport, call.transport = call.transport, None

        current = asyncio.current_task()
        tasks = [task for task in call.tasks if task is not current]
        call.tasks.clear()
        for task in tasks:
            task.cancel()

        if negotiation is not None:
            await negotiation.close()

        if local_media is not None:
            local_media.release()

        if remote_media is not None:
            await remote_media.release()

        if transport is not None:
            try:
                await transport.close()
            except Exception as e:
                logger.warning(
                    "Error disconnecting signaling transport",
                    extra={"call_id": call.call_id, "error": str(e)},
                )

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        call.metrics.finalize()
        logger.info(
            "Call torn down",
            extra={
                "call_id": call.call_id,
                "reason": reason,
                "time_to_connect_ms": call.metrics.time_to_connect_ms(),
            },
        )
        return True
