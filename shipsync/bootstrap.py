"""
Runtime wiring: logging, the synchronizer graph and its lifecycle.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from shipsync.config import settings
from shipsync.database import Base, SessionLocal, engine
from shipsync.services.eccang_service import EccangClient, get_eccang_client
from shipsync.services.shipment_store import ShipmentStore, SqlShipmentStore
from shipsync.services.shipment_sync import ShipmentSynchronizer
from shipsync.workers.track_number_poller import TrackNumberPoller

logger = logging.getLogger(__name__)


def configure_logging(level: Optional[str] = None) -> None:
    resolved = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    logging.basicConfig(
        level=resolved,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # basicConfig is a no-op once the root logger has handlers
    logging.getLogger().setLevel(resolved)


def create_synchronizer(
    store: Optional[ShipmentStore] = None,
    client: Optional[EccangClient] = None,
    poller: Optional[TrackNumberPoller] = None,
) -> ShipmentSynchronizer:
    """Build store + client + poller from settings; the poller resolves through the synchronizer."""
    sync = ShipmentSynchronizer(
        store=store or SqlShipmentStore(SessionLocal),
        client=client or get_eccang_client(),
        poller=poller or TrackNumberPoller(),
    )
    sync.poller.resolver = sync.refresh_track_number
    return sync


@asynccontextmanager
async def shipsync_runtime(
    store: Optional[ShipmentStore] = None,
    client: Optional[EccangClient] = None,
    poller: Optional[TrackNumberPoller] = None,
) -> AsyncIterator[ShipmentSynchronizer]:
    """
    Create tables, yield a ready synchronizer, cancel outstanding polls on exit.
    Tables are only created for the default SQL store.
    """
    if store is None:
        Base.metadata.create_all(bind=engine)
    sync = create_synchronizer(store, client, poller)
    logger.info("shipsync started (%s)", settings)
    try:
        yield sync
    finally:
        await sync.poller.shutdown()
        logger.info("shipsync stopped")
