"""
Topic handler tests with in-memory collaborators.
"""

import io
import tarfile
from pathlib import Path
from uuid import uuid4

import pytest

from conftest import (
    FakeAccounts,
    FakeEngine,
    FakeLease,
    FakeScriptRunner,
    make_task,
)

from bpmworker.config import Settings
from bpmworker.errors import BusinessError, InvalidVariableValue, RemoteJobFailed, VariableNotFound
from bpmworker.handlers import (
    CancelAccountRegistrationHandler,
    ComputeAutomatedMetadataHandler,
    DeleteAllUserDataHandler,
    EnableIprProtectionHandler,
    IngestHandler,
)
from bpmworker.models import (
    Account,
    ActivationStatus,
    AccountType,
    AssetDraft,
    ErrorCodes,
    FileResource,
    IngestResult,
    JobStatus,
)
from bpmworker.worker import AsyncJobPoller, DispatchRegistry, VariableAccessor


async def no_sleep(seconds):
    return None


def poller() -> AsyncJobPoller:
    return AsyncJobPoller(sleep=no_sleep)


class FakeAssets:
    def __init__(self, draft: AssetDraft, root: Path, source_type="VECTOR"):
        self.draft = draft
        self.root = root
        self.source_type = source_type
        self.metadata = {}
        self.ingestion = []
        self.statuses = []

    async def find_draft(self, publisher_key, draft_key):
        return self.draft

    async def source_type_for_format(self, format):
        return self.source_type

    def resolve_resource_path(self, publisher_key, draft_key, file_name, ipr_protected=False):
        folder = "ipr" if ipr_protected else "resources"
        return self.root / str(draft_key) / folder / file_name

    async def update_metadata(self, publisher_key, draft_key, resource_id, metadata):
        self.metadata[resource_id] = metadata

    async def update_resource_ingestion_data(self, publisher_key, draft_key, resource_id, data):
        self.ingestion.append((resource_id, data))

    async def update_status(self, publisher_key, draft_key, status):
        self.statuses.append(status)


def make_draft(**overrides) -> AssetDraft:
    values = dict(
        key=uuid4(),
        publisher_key=uuid4(),
        format="GeoPackage",
        resources=[
            FileResource(id="r1", file_name="roads.gpkg"),
            FileResource(id="svc", file_name="wms", type="SERVICE"),
        ],
    )
    values.update(overrides)
    return AssetDraft(**values)


def draft_variables(draft: AssetDraft, key_name: str = "draftKey", **extra) -> VariableAccessor:
    values = {key_name: str(draft.key), "publisherKey": str(draft.publisher_key)}
    values.update(extra)
    return VariableAccessor(values)


# ============================================================================
# Ingest
# ============================================================================


class FakeIngestJobs:
    def __init__(self, existing=None, existing_status=None, statuses=None):
        self.existing = existing
        self.existing_status = existing_status
        self.statuses = list(statuses or [JobStatus(completed=True, success=True)])
        self.submitted = []
        self.published = []

    async def get_ticket(self, idempotent_key):
        return self.existing

    async def ingest_async(self, idempotent_key, path, table_name):
        self.submitted.append((idempotent_key, path, table_name))
        return "ticket-new"

    async def get_status(self, ticket):
        if ticket == self.existing and self.existing_status is not None:
            status, self.existing_status = self.existing_status, None
            return status
        return self.statuses.pop(0)

    async def get_result(self, ticket):
        return IngestResult(table="r1", schema="public", rows=10)

    async def publish(self, idempotent_key, table_name):
        self.published.append(table_name)
        return {"wms": "http://maps/wms", "table": table_name}


@pytest.mark.asyncio
async def test_ingest_submits_and_records_results(tmp_path):
    draft = make_draft()
    assets = FakeAssets(draft, tmp_path)
    jobs = FakeIngestJobs()
    handler = IngestHandler(assets, jobs, poller=poller())
    lease = FakeLease()

    output = await handler.execute(
        make_task("ingest"), lease, draft_variables(draft, "assetKey", published="true")
    )

    assert output is None
    assert jobs.submitted == [("r1", str(tmp_path / str(draft.key) / "resources" / "roads.gpkg"), "r1")]
    assert assets.ingestion[0] == ("r1", {"table": "r1", "schema": "public", "rows": 10, "extra": {}})
    assert jobs.published == ["r1"]
    assert assets.ingestion[1][1]["wms"] == "http://maps/wms"
    assert lease.extensions == 1


@pytest.mark.asyncio
async def test_ingest_reuses_completed_job_without_polling(tmp_path):
    draft = make_draft()
    assets = FakeAssets(draft, tmp_path)
    jobs = FakeIngestJobs(
        existing="ticket-old",
        existing_status=JobStatus(ticket="ticket-old", completed=True, success=True),
        statuses=[],
    )
    lease = FakeLease()

    await IngestHandler(assets, jobs, poller=poller()).execute(
        make_task("ingest"), lease, draft_variables(draft, "assetKey", published="false")
    )

    assert jobs.submitted == []
    assert jobs.published == []
    assert lease.extensions == 0
    assert len(assets.ingestion) == 1


@pytest.mark.asyncio
async def test_ingest_resumes_running_job(tmp_path):
    draft = make_draft()
    jobs = FakeIngestJobs(
        existing="ticket-old",
        existing_status=JobStatus(ticket="ticket-old", completed=False),
        statuses=[JobStatus(completed=True, success=True)],
    )

    await IngestHandler(FakeAssets(draft, tmp_path), jobs, poller=poller()).execute(
        make_task("ingest"), FakeLease(), draft_variables(draft, "assetKey", published="false")
    )

    assert jobs.submitted == []


@pytest.mark.asyncio
async def test_ingest_failure_is_a_publish_business_error(tmp_path):
    draft = make_draft()
    engine = FakeEngine()
    jobs = FakeIngestJobs(statuses=[JobStatus(completed=True, success=False, comment="bad")])
    registry = DispatchRegistry(engine)
    registry.register(IngestHandler(FakeAssets(draft, tmp_path), jobs, poller=poller()))
    task = make_task(
        "ingest",
        {"assetKey": str(draft.key), "publisherKey": str(draft.publisher_key), "published": "false"},
    )

    await registry.process(task)

    assert engine.bpmn_errors[0]["code"] == ErrorCodes.PUBLISH_ASSET.value
    assert engine.bpmn_errors[0]["message"] == "[INGEST Service] Operation has failed"
    assert "Ticket: [ticket-new]. Comment: [bad]" in engine.bpmn_errors[0]["variables"]["bpmnBusinessErrorDetails"]


@pytest.mark.asyncio
async def test_ingest_requires_published_flag(tmp_path):
    draft = make_draft()

    with pytest.raises(VariableNotFound):
        await IngestHandler(FakeAssets(draft, tmp_path), FakeIngestJobs(), poller=poller()).execute(
            make_task("ingest"), FakeLease(), draft_variables(draft, "assetKey")
        )


# ============================================================================
# Profiler
# ============================================================================


class FakeProfilerJobs:
    def __init__(self, statuses=None):
        self.statuses = list(statuses or [JobStatus(completed=True, success=True)])
        self.requests = []

    async def profile(self, source_type, path, options):
        self.requests.append((source_type, path, options))
        return f"ticket-{len(self.requests)}"

    async def get_status(self, ticket):
        return self.statuses.pop(0)

    async def get_metadata(self, ticket):
        return {"ticket": ticket, "featureCount": 3}


@pytest.mark.asyncio
async def test_profiler_stores_metadata_and_moves_to_review(tmp_path):
    draft = make_draft()
    assets = FakeAssets(draft, tmp_path)
    jobs = FakeProfilerJobs(
        [JobStatus(completed=False), JobStatus(completed=True, success=True)]
    )
    lease = FakeLease()

    await ComputeAutomatedMetadataHandler(assets, jobs, poller=poller()).execute(
        make_task("computeAutomatedMetadata"), lease, draft_variables(draft)
    )

    source_type, path, options = jobs.requests[0]
    assert source_type == "VECTOR"
    assert path.endswith("roads.gpkg")
    assert options["width"] == 1920
    assert assets.metadata == {"r1": {"ticket": "ticket-1", "featureCount": 3}}
    assert assets.statuses == ["PENDING_HELPDESK_REVIEW"]
    assert lease.extensions == 2


@pytest.mark.asyncio
async def test_profiler_unknown_format(tmp_path):
    draft = make_draft(format="XYZ")
    assets = FakeAssets(draft, tmp_path, source_type=None)

    with pytest.raises(BusinessError) as exc_info:
        await ComputeAutomatedMetadataHandler(assets, FakeProfilerJobs(), poller=poller()).execute(
            make_task("computeAutomatedMetadata"), FakeLease(), draft_variables(draft)
        )

    assert exc_info.value.message == "Failed to map format [XYZ] to source type"
    assert assets.statuses == []


@pytest.mark.asyncio
async def test_profiler_job_failure_without_code_is_a_failure(tmp_path):
    draft = make_draft()
    engine = FakeEngine()
    registry = DispatchRegistry(engine)
    registry.register(
        ComputeAutomatedMetadataHandler(
            FakeAssets(draft, tmp_path),
            FakeProfilerJobs([JobStatus(completed=True, success=False)]),
            poller=poller(),
        )
    )
    task = make_task(
        "computeAutomatedMetadata",
        {"draftKey": str(draft.key), "publisherKey": str(draft.publisher_key)},
    )

    await registry.process(task)

    assert engine.bpmn_errors == []
    assert engine.failures[0]["message"] == "[Data Profiler Service] Operation has failed"


# ============================================================================
# IPR protection
# ============================================================================


class FakeIprJobs:
    def __init__(self, existing=None, output_path="out/r1.tar.gz"):
        self.existing = existing
        self.output_path = output_path
        self.embedded = []

    async def get_job_status(self, ticket, idempotent_key):
        if ticket is None and not self.embedded:
            return self.existing
        return JobStatus(
            ticket=ticket or "ticket-old",
            completed=True,
            success=True,
            payload={"outputPath": self.output_path},
        )

    async def embed_fictitious(self, idempotent_key, path, options):
        self.embedded.append((idempotent_key, path, options))
        return "ticket-ipr"


def write_archive(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, "w:gz") as tar:
        info = tarfile.TarInfo("roads.gpkg")
        info.size = len(content)
        tar.addfile(info, io.BytesIO(content))


def ipr_settings(tmp_path: Path) -> Settings:
    return Settings(
        ipr_input_directory=tmp_path / "ipr-in",
        ipr_output_directory=tmp_path / "ipr-out",
    )


@pytest.mark.asyncio
async def test_ipr_protects_files_and_unpacks_output(tmp_path):
    draft = make_draft(ipr_protection_enabled=True, pricing_models=["FIXED"], asset_type="VECTOR")
    assets = FakeAssets(draft, tmp_path / "drafts")
    source = assets.resolve_resource_path(draft.publisher_key, draft.key, "roads.gpkg")
    source.parent.mkdir(parents=True)
    source.write_bytes(b"original")
    config = ipr_settings(tmp_path)
    write_archive(config.ipr_output_directory / "out/r1.tar.gz", b"protected")
    jobs = FakeIprJobs()
    handler = EnableIprProtectionHandler(assets, jobs, poller=poller(), config=config)

    output = await handler.execute(
        make_task("enableIprProtection"),
        FakeLease(),
        draft_variables(draft, requestType="CATALOGUE_ASSET"),
    )

    assert jobs.embedded[0][0] == "r1"
    assert jobs.embedded[0][1] == str(Path("r1") / "roads.gpkg")
    assert (config.ipr_input_directory / "r1" / "roads.gpkg").read_bytes() == b"original"
    protected = assets.resolve_resource_path(draft.publisher_key, draft.key, "roads.gpkg", True)
    assert protected.read_bytes() == b"protected"
    assert output == {"ingested": False, "status": "PENDING_HELPDESK_REVIEW"}
    assert assets.statuses == ["PENDING_HELPDESK_REVIEW"]


@pytest.mark.asyncio
async def test_ipr_disabled_skips_protection_and_reports_ingestion(tmp_path):
    draft = make_draft(asset_type="SERVICE")
    assets = FakeAssets(draft, tmp_path)
    jobs = FakeIprJobs()

    output = await EnableIprProtectionHandler(
        assets, jobs, poller=poller(), config=ipr_settings(tmp_path)
    ).execute(
        make_task("enableIprProtection"),
        FakeLease(),
        draft_variables(draft, requestType="CATALOGUE_ASSET"),
    )

    assert jobs.embedded == []
    assert output == {"ingested": True}
    assert assets.statuses == []


@pytest.mark.asyncio
async def test_ipr_reuses_existing_job(tmp_path):
    draft = make_draft(ipr_protection_enabled=True)
    assets = FakeAssets(draft, tmp_path / "drafts")
    source = assets.resolve_resource_path(draft.publisher_key, draft.key, "roads.gpkg")
    source.parent.mkdir(parents=True)
    source.write_bytes(b"original")
    config = ipr_settings(tmp_path)
    write_archive(config.ipr_output_directory / "out/r1.tar.gz", b"protected")
    jobs = FakeIprJobs(existing=JobStatus(ticket="ticket-old", completed=False))

    await EnableIprProtectionHandler(assets, jobs, poller=poller(), config=config).execute(
        make_task("enableIprProtection"),
        FakeLease(),
        draft_variables(draft, requestType="CATALOGUE_ASSET"),
    )

    assert jobs.embedded == []


@pytest.mark.asyncio
async def test_ipr_user_service_is_a_business_error_with_its_code(tmp_path):
    draft = make_draft()
    engine = FakeEngine()
    registry = DispatchRegistry(engine)
    registry.register(
        EnableIprProtectionHandler(
            FakeAssets(draft, tmp_path), FakeIprJobs(), poller=poller(), config=ipr_settings(tmp_path)
        )
    )

    await registry.process(make_task("enableIprProtection", {"requestType": "USER_SERVICE"}))

    assert engine.bpmn_errors[0]["code"] == ErrorCodes.PUBLISH_USER_SERVICE.value
    assert engine.bpmn_errors[0]["message"] == "IPR protection for user services is not supported"


@pytest.mark.asyncio
async def test_ipr_unknown_request_type_is_a_validation_failure(tmp_path):
    draft = make_draft()
    handler = EnableIprProtectionHandler(
        FakeAssets(draft, tmp_path), FakeIprJobs(), poller=poller(), config=ipr_settings(tmp_path)
    )

    with pytest.raises(InvalidVariableValue):
        await handler.execute(
            make_task("enableIprProtection"), FakeLease(), VariableAccessor({"requestType": "OTHER"})
        )


# ============================================================================
# Account registration and deletion
# ============================================================================


@pytest.mark.asyncio
async def test_cancel_registration():
    account = Account(id=1, key=uuid4(), email="a@x.com")
    accounts = FakeAccounts(accounts=[account])

    await CancelAccountRegistrationHandler(accounts).execute(
        make_task("cancelAccountRegistration"),
        FakeLease(),
        VariableAccessor({"userKey": str(account.key)}),
    )

    assert accounts.cancelled == [account.key]


@pytest.mark.asyncio
async def test_cancel_registration_errors():
    completed = Account(
        id=2, key=uuid4(), email="b@x.com", activation_status=ActivationStatus.COMPLETED
    )
    handler = CancelAccountRegistrationHandler(FakeAccounts(accounts=[completed]))
    missing_key = uuid4()

    with pytest.raises(BusinessError) as missing:
        await handler.execute(
            make_task(), FakeLease(), VariableAccessor({"userKey": str(missing_key)})
        )
    with pytest.raises(BusinessError) as invalid:
        await handler.execute(
            make_task(), FakeLease(), VariableAccessor({"userKey": str(completed.key)})
        )

    assert missing.value.message == f"Account not found [userKey={missing_key}]"
    assert invalid.value.message == (
        f"Invalid account status. Expected status [PENDING]. Found [COMPLETED]. "
        f"[userKey={completed.key}]"
    )
    assert handler.error_code == ErrorCodes.ACCOUNT_REGISTRATION.value


class RecordingSaga:
    def __init__(self):
        self.contexts = []

    async def run(self, ctx):
        self.contexts.append(ctx)


@pytest.mark.asyncio
async def test_delete_all_user_data_builds_context():
    saga = RecordingSaga()
    user_key = uuid4()
    parent_key = uuid4()
    lease = FakeLease()

    output = await DeleteAllUserDataHandler(saga).execute(
        make_task("deleteAllUserData"),
        lease,
        VariableAccessor(
            {
                "userId": 12,
                "userKey": str(user_key),
                "userParentKey": str(parent_key),
                "userName": "jane@example.com",
                "accountDeleted": True,
                "contractsDeleted": "false",
                "fileSystemDeleted": False,
            }
        ),
    )

    ctx = saga.contexts[0]
    assert output is None
    assert ctx.user_id == 12
    assert ctx.user_key == user_key
    assert ctx.user_parent_key == parent_key
    assert ctx.user_type == AccountType.OPERTUSMUNDI
    assert ctx.user_geodata_shard is None
    assert ctx.account_deleted
    assert not ctx.contracts_deleted
    assert ctx.keep_alive is lease


@pytest.mark.asyncio
async def test_delete_all_user_data_malformed_key_is_transient():
    """A malformed key fails before any saga call and is not a validation failure."""
    engine = FakeEngine()
    saga = RecordingSaga()
    registry = DispatchRegistry(engine)
    registry.register(DeleteAllUserDataHandler(saga))

    await registry.process(
        make_task(
            "deleteAllUserData",
            {
                "userId": 12,
                "userKey": "not-a-uuid",
                "userParentKey": str(uuid4()),
                "userName": "jane",
                "accountDeleted": True,
                "contractsDeleted": True,
                "fileSystemDeleted": True,
            },
        )
    )

    assert saga.contexts == []
    assert engine.failures[0]["message"] == "Operation has failed"
    assert "ValueError" in engine.failures[0]["details"]
