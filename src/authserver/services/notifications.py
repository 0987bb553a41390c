"""Best-effort delivery of notifier calls made after commit."""

import logging
from collections.abc import Awaitable

logger = logging.getLogger(__name__)


async def deliver(send: Awaitable[bool], *, channel: str, destination: str) -> str | None:
    """Await a notifier call without letting it fail the operation.

    The state change that produced the message is already committed, so a
    failed send is only reported.

    Returns:
        None on success, otherwise a warning suitable for the client
    """
    try:
        sent = await send
    except Exception as e:
        logger.warning(f"Failed to send {channel} to {destination}: {e}")
        return f"Could not send {channel}. Please try again later."

    if not sent:
        logger.warning(f"{channel} backend reported failure for {destination}")
        return f"Could not send {channel}. Please try again later."
    return None
