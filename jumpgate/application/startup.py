"""
Application startup and shutdown.

Components are built from ``ApplicationConfig``, started in order and
stopped in reverse order. A component that fails to start stops everything
started before it.
"""

from typing import List, Optional

from loguru import logger

from ..core.interfaces.credentials import ICredentialStore
from ..core.interfaces.lifecycle import IComponent
from ..infrastructure.config.models import ApplicationConfig
from ..infrastructure.credentials.factory import create_credential_store
from ..infrastructure.services.bastion.server import BastionServer


class ApplicationStartup:
    """Builds and runs the credential store and the bastion listener."""

    def __init__(self, config: ApplicationConfig,
                 store: Optional[ICredentialStore] = None) -> None:
        self._config = config
        self._store = store
        self._server: Optional[BastionServer] = None
        self._started_components: List[IComponent] = []

    @property
    def store(self) -> Optional[ICredentialStore]:
        return self._store

    @property
    def server(self) -> Optional[BastionServer]:
        return self._server

    def configure_services(self) -> List[IComponent]:
        """Build the components in startup order."""
        if self._store is None:
            self._store = create_credential_store(self._config.credentials)

        self._server = BastionServer(
            self._config.server, self._store, self._config.upstream)

        logger.debug(
            f"Configured {self._store.name} and {self._server.name}")
        return [self._store, self._server]

    async def start_application(self) -> None:
        logger.info("Starting application components...")

        for component in self.configure_services():
            try:
                logger.debug(f"Starting component: {component.name}")
                await component.start()
                self._started_components.append(component)
                logger.info(f"Started component: {component.name}")
            except Exception as e:
                logger.error(f"Failed to start component {component.name}: {e}")
                await self.stop_application()
                raise

        logger.info("Application startup completed successfully")

    async def stop_application(self) -> None:
        if not self._started_components:
            return

        logger.info("Stopping application components...")

        for component in reversed(self._started_components):
            try:
                logger.debug(f"Stopping component: {component.name}")
                await component.stop()
                logger.info(f"Stopped component: {component.name}")
            except Exception as e:
                logger.error(f"Error stopping component {component.name}: {e}")

        self._started_components.clear()
        logger.info("Application shutdown completed")
