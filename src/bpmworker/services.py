"""Wiring of collaborators and topic handlers.

HTTP clients and repositories owned by this worker are built from
settings. Business services exposed by other platform components
(catalogue, user services, OAuth clients, identity provider, provider
assets) are supplied by the optional `services_factory`, a
``module:callable`` that receives the settings and returns a mapping of
collaborator name to object.
"""

import importlib
import logging
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Optional

from bpmworker.config import Settings
from bpmworker.db import AccountRepository, DraftRepository, SqlDeletionScriptRunner
from bpmworker.engine import EngineClient
from bpmworker.handlers import (
    CancelAccountRegistrationHandler,
    ComputeAutomatedMetadataHandler,
    DeleteAllUserDataHandler,
    EnableIprProtectionHandler,
    IngestHandler,
)
from bpmworker.integrations import IngestClient, IprClient, ProfilerClient, SearchIndexClient
from bpmworker.saga import AccountDeletionSaga, FileTeardown
from bpmworker.worker import TaskHandler

logger = logging.getLogger(__name__)

FACTORY_SERVICES = ("catalogue", "user_services", "oauth_clients", "identity_provider", "assets")
HTTP_CLIENTS = (EngineClient, IngestClient, ProfilerClient, IprClient, SearchIndexClient)


@dataclass
class Services:
    """Collaborators available to the handlers."""

    engine: EngineClient
    accounts: Any
    drafts: Any
    script_runner: Any
    ingest: Optional[IngestClient] = None
    profiler: Optional[ProfilerClient] = None
    ipr: Optional[IprClient] = None
    search: Optional[SearchIndexClient] = None
    catalogue: Any = None
    user_services: Any = None
    oauth_clients: Any = None
    identity_provider: Any = None
    assets: Any = None
    extra: dict[str, Any] = field(default_factory=dict)

    def missing(self, *names: str) -> list[str]:
        return [name for name in names if getattr(self, name) is None]

    async def close(self) -> None:
        for item in fields(self):
            client = getattr(self, item.name)
            if isinstance(client, HTTP_CLIENTS):
                await client.close()


def load_factory(path: str) -> Callable[[Settings], dict[str, Any]]:
    """Import a ``module:callable`` factory."""
    module_name, _, attribute = path.partition(":")
    module = importlib.import_module(module_name)
    return getattr(module, attribute)


def build_services(config: Settings, engine: Optional[EngineClient] = None) -> Services:
    services = Services(
        engine=engine or EngineClient(config),
        accounts=AccountRepository(),
        drafts=DraftRepository(),
        script_runner=SqlDeletionScriptRunner(config.deletion_script_path),
    )
    if config.ingest_base_url:
        services.ingest = IngestClient(config.ingest_base_url)
    if config.profiler_base_url:
        services.profiler = ProfilerClient(config.profiler_base_url)
    if config.ipr_base_url:
        services.ipr = IprClient(config.ipr_base_url)
    if config.search_base_url:
        services.search = SearchIndexClient(config)

    if config.services_factory:
        provided = load_factory(config.services_factory)(config) or {}
        for name, value in provided.items():
            if name in FACTORY_SERVICES:
                setattr(services, name, value)
            else:
                services.extra[name] = value
        logger.info(f"Loaded business services. [factory={config.services_factory}, names={sorted(provided)}]")

    return services


def build_handlers(services: Services, config: Settings) -> list[TaskHandler]:
    """Create every handler whose collaborators are available."""
    handlers: list[TaskHandler] = [CancelAccountRegistrationHandler(services.accounts)]

    candidates: list[tuple[str, tuple[str, ...], Callable[[], TaskHandler]]] = [
        (
            DeleteAllUserDataHandler.topic,
            ("user_services", "ingest", "catalogue", "search", "oauth_clients", "identity_provider"),
            lambda: DeleteAllUserDataHandler(
                AccountDeletionSaga(
                    workflow=services.engine,
                    user_services=services.user_services,
                    ingest=services.ingest,
                    catalogue=services.catalogue,
                    drafts=services.drafts,
                    search=services.search,
                    oauth_clients=services.oauth_clients,
                    identity_provider=services.identity_provider,
                    accounts=services.accounts,
                    script_runner=services.script_runner,
                    files=FileTeardown(config),
                )
            ),
        ),
        (
            IngestHandler.topic,
            ("assets", "ingest"),
            lambda: IngestHandler(services.assets, services.ingest),
        ),
        (
            ComputeAutomatedMetadataHandler.topic,
            ("assets", "profiler"),
            lambda: ComputeAutomatedMetadataHandler(services.assets, services.profiler),
        ),
        (
            EnableIprProtectionHandler.topic,
            ("assets", "ipr"),
            lambda: EnableIprProtectionHandler(services.assets, services.ipr, config=config),
        ),
    ]

    for topic, required, create in candidates:
        missing = services.missing(*required)
        if missing:
            logger.warning(f"Skipping subscription. [topic={topic}, missing={missing}]")
            continue
        handlers.append(create())

    return handlers
