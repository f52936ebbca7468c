"""Client Bootstrap — builds the wired data-access layer for the app shell.

Invariants:
    - Logging is configured from Settings before any component is built
    - One ResilientApiClient, RegionStore and AppStateMonitor per client;
      every service shares them
    - The API client reports session expiry through the session store's
      one-shot signal and reads connectivity from the app-state monitor
    - aclose() cancels import polling before closing the HTTP client
"""

import logging
from dataclasses import dataclass

import httpx

from tripspire_client.config import Settings, get_settings
from tripspire_client.core.boundary_protocols import TelemetrySink
from tripspire_client.infrastructure.api_client import ResilientApiClient
from tripspire_client.infrastructure.app_state import AppStateMonitor
from tripspire_client.infrastructure.observability import setup_logging
from tripspire_client.infrastructure.region_store import RegionStore
from tripspire_client.infrastructure.session_store import InMemorySessionStore
from tripspire_client.services.catalog_reads import CatalogReader
from tripspire_client.services.mutation_coordinator import MutationCoordinator
from tripspire_client.services.share_intent import ShareImportHandler

logger = logging.getLogger(__name__)


@dataclass
class TripspireClient:
    settings: Settings
    session: InMemorySessionStore
    app_state: AppStateMonitor
    api: ResilientApiClient
    store: RegionStore
    coordinator: MutationCoordinator
    reader: CatalogReader
    shares: ShareImportHandler

    async def __aenter__(self) -> "TripspireClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.shares.close()
        await self.api.aclose()
        logger.info("Tripspire client closed")


def build_client(
    settings: Settings | None = None,
    *,
    session: InMemorySessionStore | None = None,
    telemetry: TelemetrySink | None = None,
    http: httpx.AsyncClient | None = None,
) -> TripspireClient:
    """Wire every component from settings. Call from inside the app's event loop."""
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_format)

    session = session or InMemorySessionStore()
    app_state = AppStateMonitor()
    api = ResilientApiClient(
        session,
        http=http,
        telemetry=telemetry,
        on_session_ended=session.signal.fire,
        connectivity=app_state.current,
        settings=settings,
    )
    store = RegionStore(settings)
    client = TripspireClient(
        settings=settings,
        session=session,
        app_state=app_state,
        api=api,
        store=store,
        coordinator=MutationCoordinator(store, api, api.telemetry),
        reader=CatalogReader(store, api),
        shares=ShareImportHandler(api, store, app_state=app_state),
    )
    logger.info(
        "Tripspire client ready",
        extra={"url": settings.api_base_url},
    )
    return client
