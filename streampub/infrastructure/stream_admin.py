"""Stream bootstrap used by tooling before publishing."""

from __future__ import annotations

from nats.aio.client import Client as NATSClient
from nats.js.errors import NotFoundError

from ..ports.logger import LoggerPort


async def ensure_stream(
    nc: NATSClient,
    name: str,
    subjects: list[str],
    js_domain: str | None = None,
    logger: LoggerPort | None = None,
) -> bool:
    """Create stream ``name`` bound to ``subjects`` unless it already exists.

    Returns:
        True if the stream was created, False if it was already there
    """
    js = nc.jetstream(domain=js_domain) if js_domain else nc.jetstream()
    try:
        await js.stream_info(name)
        return False
    except NotFoundError:
        await js.add_stream(name=name, subjects=subjects)
        if logger:
            logger.info("Created stream", stream=name, subjects=",".join(subjects))
        return True
