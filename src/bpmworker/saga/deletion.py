"""Account deletion saga.

Tears down an account's footprint across the workflow engine, user
services, the catalogue, the search index, file storage, OAuth clients,
the identity provider and the relational store. There is no distributed
transaction: every step is safe to repeat, so a failed run is retried from
the top.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from bpmworker.errors import NotFoundError, SagaStepError, WorkerError
from bpmworker.models import AccountActiveTask, AccountType, DeletionContext
from bpmworker.saga.files import FileTeardown
from bpmworker.saga.interfaces import (
    AccountClientService,
    AccountRepository,
    CatalogueService,
    DeletionScriptRunner,
    DraftRepository,
    IdentityProvider,
    IngestService,
    SearchIndex,
    UserServiceCatalogue,
    WorkflowInstances,
)
from bpmworker.worker.lease import keep_alive

logger = logging.getLogger(__name__)

START_USER_KEY_VARIABLE = "startUserKey"
DELETE_USER_PROCESS = "system-maintenance-delete-user"

USER_SERVICE_PAGE_SIZE = 10
CATALOGUE_PAGE_SIZE = 20
DRAFT_PAGE_SIZE = 10
OAUTH_CLIENT_PAGE_SIZE = 10


def deletion_business_key(account_key: object) -> str:
    return f"{account_key}::DELETE"


@asynccontextmanager
async def ignore_not_found(resource: str) -> AsyncIterator[None]:
    """Treat a resource that is already gone as deleted."""
    try:
        yield
    except NotFoundError as e:
        logger.info(f"Resource already deleted. [resource={resource}]: {e}")


class AccountDeletionSaga:
    """Ordered, idempotent teardown of one account."""

    def __init__(
        self,
        workflow: WorkflowInstances,
        user_services: UserServiceCatalogue,
        ingest: IngestService,
        catalogue: CatalogueService,
        drafts: DraftRepository,
        search: SearchIndex,
        oauth_clients: AccountClientService,
        identity_provider: IdentityProvider,
        accounts: AccountRepository,
        script_runner: DeletionScriptRunner,
        files: Optional[FileTeardown] = None,
    ):
        self.workflow = workflow
        self.user_services = user_services
        self.ingest = ingest
        self.catalogue = catalogue
        self.drafts = drafts
        self.search = search
        self.oauth_clients = oauth_clients
        self.identity_provider = identity_provider
        self.accounts = accounts
        self.script_runner = script_runner
        self.files = files or FileTeardown()

    @asynccontextmanager
    async def step(self, name: str, ctx: DeletionContext) -> AsyncIterator[None]:
        """
        Guard one saga step.

        Not-found errors are logged and swallowed, any other error is
        wrapped in `SagaStepError` and aborts the run. The lease is extended
        on every exit path.
        """
        async with keep_alive(ctx.keep_alive):
            try:
                yield
            except NotFoundError as e:
                logger.info(f"Ignoring missing resource. [step={name}, userKey={ctx.user_key}]: {e}")
            except SagaStepError:
                raise
            except Exception as e:
                logger.error(f"Deletion step has failed. [step={name}, userKey={ctx.user_key}]")
                raise SagaStepError(name, ctx.user_key, e) from e

    async def run(self, ctx: DeletionContext) -> None:
        """Run every step in order, then restart deletion for orphaned vendors."""
        logger.info(
            f"Deleting account data. [userKey={ctx.user_key}, type={ctx.user_type.value}, "
            f"accountDeleted={ctx.account_deleted}, fileSystemDeleted={ctx.file_system_deleted}, "
            f"contractsDeleted={ctx.contracts_deleted}]"
        )
        await self.delete_workflow_instances(ctx)
        await self.delete_user_services(ctx)
        # Records collected ids needed by the statistics, file and SQL steps
        await self.delete_catalogue_assets(ctx)
        # Recovers ids lost when a previous run failed after unpublishing
        await self.collect_draft_asset_ids(ctx)
        await self.delete_asset_statistics(ctx)
        if ctx.is_file_system_deleted():
            await self.delete_all_files(ctx)
        await self.delete_oauth_clients(ctx)
        if ctx.account_deleted:
            await self.delete_idp_user(ctx)
            await self.delete_user_profile(ctx)
        await self.delete_database_records(ctx)

        if ctx.account_deleted and ctx.user_type == AccountType.primary():
            await self.delete_orphan_vendor_accounts(ctx)

        logger.info(f"Deleted account data. [userKey={ctx.user_key}]")

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def delete_workflow_instances(self, ctx: DeletionContext) -> None:
        async with self.step("workflow-instances", ctx):
            active = await self.workflow.find_instances_by_variable(
                START_USER_KEY_VARIABLE, ctx.user_key
            )
            historic = await self.workflow.find_historic_instances_by_variable(
                START_USER_KEY_VARIABLE, ctx.user_key
            )
            active_ids = list(dict.fromkeys(i.id for i in active))
            historic_ids = list(dict.fromkeys(i.id for i in historic))

            for instance_id in active_ids:
                try:
                    await self.workflow.delete_instance(instance_id)
                except NotFoundError:
                    await self._delete_history(instance_id)
            for instance_id in historic_ids:
                await self._delete_history(instance_id)

    async def _delete_history(self, instance_id: str) -> None:
        try:
            await self.workflow.delete_historic_instance(instance_id)
        except NotFoundError:
            logger.debug(f"Historic process instance already deleted. [id={instance_id}]")

    async def delete_user_services(self, ctx: DeletionContext) -> None:
        async with self.step("user-services", ctx):
            workspace = f"p_{ctx.user_parent_key}"
            index = 0
            services = await self.user_services.find_all(
                ctx.user_key, ctx.user_parent_key, index, USER_SERVICE_PAGE_SIZE
            )
            while services.items:
                for service in services.items:
                    table = f"_{service.key}"
                    async with ignore_not_found(f"{workspace}:{table}"):
                        await self.ingest.remove_data_and_layer(
                            ctx.user_geodata_shard, workspace, table
                        )
                index += 1
                services = await self.user_services.find_all(
                    ctx.user_key, ctx.user_parent_key, index, USER_SERVICE_PAGE_SIZE
                )
                await ctx.keep_alive.extend()

    async def delete_catalogue_assets(self, ctx: DeletionContext) -> None:
        # Vendor assets are published under the parent account
        if ctx.user_type == AccountType.VENDOR:
            return
        async with self.step("catalogue-assets", ctx):
            workspace = f"_{ctx.user_parent_key}"
            # Unpublished items leave the result set, so always read page 0
            result = await self.catalogue.find_all_published(ctx.user_key, 0, CATALOGUE_PAGE_SIZE)
            while result.items:
                for item in result.items:
                    ctx.collect(item.id)
                    details = await self.catalogue.unpublish(ctx.user_key, item.id)
                    for info in details.ingestion_info:
                        async with ignore_not_found(f"{workspace}:{info.table_name}"):
                            await self.ingest.remove_data_and_layer(
                                ctx.user_geodata_shard, workspace, info.table_name
                            )
                result = await self.catalogue.find_all_published(
                    ctx.user_key, 0, CATALOGUE_PAGE_SIZE
                )
                await ctx.keep_alive.extend()

    async def collect_draft_asset_ids(self, ctx: DeletionContext) -> None:
        if ctx.user_type == AccountType.VENDOR:
            return
        async with self.step("draft-asset-ids", ctx):
            index = 0
            drafts = await self.drafts.find_all_by_publisher(ctx.user_key, index, DRAFT_PAGE_SIZE)
            while drafts.items:
                for draft in drafts.items:
                    if draft.asset_published and draft.asset_published.strip():
                        ctx.collect(draft.asset_published)
                index += 1
                drafts = await self.drafts.find_all_by_publisher(
                    ctx.user_key, index, DRAFT_PAGE_SIZE
                )
                await ctx.keep_alive.extend()

    async def delete_asset_statistics(self, ctx: DeletionContext) -> None:
        async with self.step("asset-statistics", ctx):
            if not ctx.collected_asset_ids:
                return
            await self.search.delete_asset_statistics(sorted(ctx.collected_asset_ids))

    async def delete_all_files(self, ctx: DeletionContext) -> None:
        async with self.step("files", ctx):
            await self.files.delete_all(ctx)

    async def delete_oauth_clients(self, ctx: DeletionContext) -> None:
        async with self.step("oauth-clients", ctx):
            index = 0
            clients = await self.oauth_clients.find_all(ctx.user_key, index, OAUTH_CLIENT_PAGE_SIZE)
            while clients.items:
                for client in clients.items:
                    async with ignore_not_found(f"oauth-client:{client.client_id}"):
                        await self.oauth_clients.revoke(ctx.user_id, client.client_id)
                index += 1
                clients = await self.oauth_clients.find_all(
                    ctx.user_key, index, OAUTH_CLIENT_PAGE_SIZE
                )
                await ctx.keep_alive.extend()

    async def delete_idp_user(self, ctx: DeletionContext) -> None:
        async with self.step("idp-user", ctx):
            users = await self.identity_provider.find_users_by_username(ctx.user_name)
            if len(users) > 1:
                raise WorkerError(
                    f"Expected no more than one IDP user for a given username "
                    f"[username={ctx.user_name}]",
                    "INVARIANT_VIOLATION",
                )
            if users:
                await self.identity_provider.delete_user(users[0].id)

    async def delete_user_profile(self, ctx: DeletionContext) -> None:
        async with self.step("user-profile", ctx):
            await self.search.remove_profile(ctx.user_key)

    async def delete_database_records(self, ctx: DeletionContext) -> None:
        async with self.step("database-records", ctx):
            await self.script_runner.run(ctx)

    # ------------------------------------------------------------------
    # Orphan vendor accounts
    # ------------------------------------------------------------------

    async def delete_orphan_vendor_accounts(self, ctx: DeletionContext) -> list[str]:
        """
        Start a deletion process for every vendor account left without a parent.

        A process is started when the vendor has no active task or no
        deletion process instance exists for it. Returns the business keys
        of the started processes.
        """
        started: list[str] = []
        for account in await self.accounts.find_all_orphan_vendors():
            business_key = deletion_business_key(account.key)
            instance = await self.workflow.find_instance_by_business_key(business_key)

            if account.active_task != AccountActiveTask.NONE and instance is not None:
                continue

            await self.accounts.set_active_task(account.id, AccountActiveTask.DELETE)

            variables = {
                START_USER_KEY_VARIABLE: str(ctx.user_key),
                "userId": account.id,
                "userKey": str(account.key),
                "userParentKey": str(account.parent_key),
                "userName": account.email,
                "userType": account.type.value,
                "userGeodataShard": account.geodata_shard,
                "accountDeleted": True,
                "fileSystemDeleted": True,
                "contractsDeleted": True,
            }
            await self.workflow.start_process(DELETE_USER_PROCESS, business_key, variables)
            started.append(business_key)
            logger.info(
                f"Started orphan vendor deletion. [vendorKey={account.key}, parentKey={ctx.user_key}]"
            )
        return started
