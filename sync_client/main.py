"""
Session console entry point.

Connects as the configured role (SYNC_ROLE, default kitchen) and logs every
event applied to the local projection. Exits non-zero once the connection
budget is exhausted.
"""

import asyncio
import logging
import sys

from shared.errors import TransportError
from shared.logging_config import setup_logging
from sync_client.client import SyncClient
from sync_client.config import ClientSettings
from sync_client.projection import KitchenProjection

settings = ClientSettings()
setup_logging(settings.log_level, service_name=f"sync-client-{settings.role}")
logger = logging.getLogger(__name__)


def _log_change(client: SyncClient):
    def on_change(event: str, data) -> None:
        projection = client.projection
        if isinstance(projection, KitchenProjection):
            logger.info(
                "Kitchen view updated",
                extra={
                    "event": event,
                    "orders": len(projection.orders),
                    "customers": projection.clients_count.customers,
                    "kitchen": projection.clients_count.kitchen,
                },
            )
        else:
            logger.info(
                "Customer view updated",
                extra={
                    "event": event,
                    "products": len(projection.products),
                    "order_number": projection.order_number or None,
                    "order_status": projection.order_status.value if projection.order_status else None,
                },
            )

    return on_change


async def main() -> int:
    client = SyncClient(settings)
    client.on_change = _log_change(client)
    logger.info("Session console starting", extra={"server_url": settings.server_url, "role": settings.role})
    try:
        await client.run()
    except TransportError as exc:
        logger.error("Disconnected", extra={"error": str(exc)})
        return 1
    finally:
        await client.close()
        logger.info("Session console stopped")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
