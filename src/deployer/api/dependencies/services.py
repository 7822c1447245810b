"""Service dependencies for FastAPI dependency injection."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any

import structlog

from deployer.config import get_settings, Settings
from deployer.domain.models.environment import ConnectionProfile, ContainerTransfer
from deployer.domain.ports.repositories import BuildRecordRepository, PipelineRunRepository
from deployer.domain.ports.services import (
    ApprovalGate,
    ArtifactArchive,
    DistributedLock,
    HealthTransport,
    LocalCommandRunner,
    RemoteCommandChannel,
)
from deployer.domain.services.executor import DeploymentExecutor
from deployer.domain.services.pipeline_service import PipelineOrchestrator
from deployer.domain.services.prober import HealthProber
from deployer.domain.services.resolver import EnvironmentResolver
from deployer.domain.services.rollback import RollbackManager, RollbackVerification
from deployer.infrastructure.approval.in_memory import InMemoryApprovalGate
from deployer.infrastructure.archive.filesystem import FilesystemArtifactArchive
from deployer.infrastructure.health.http_probe import (
    AiohttpHealthTransport,
    RemoteCurlHealthTransport,
)
from deployer.infrastructure.locking.in_memory import InMemoryDistributedLock
from deployer.infrastructure.locking.redis_lock import create_redis_client, RedisDistributedLock
from deployer.infrastructure.messaging.event_publisher import InMemoryEventPublisher
from deployer.infrastructure.observability.metrics import (
    PIPELINE_EVENT_TYPES,
    record_pipeline_event,
)
from deployer.infrastructure.persistence.database import DatabaseManager
from deployer.infrastructure.persistence.repositories.build_repo import SqlBuildRecordRepository
from deployer.infrastructure.persistence.repositories.file_repo import FileBuildRecordRepository
from deployer.infrastructure.persistence.repositories.in_memory import (
    InMemoryBuildRecordRepository,
    InMemoryPipelineRunRepository,
)
from deployer.infrastructure.remote.credentials import KeyFileCredentialProvider
from deployer.infrastructure.remote.local_channel import (
    LocalCommandChannel,
    TargetCommandChannel,
)
from deployer.infrastructure.remote.process import SubprocessCommandRunner
from deployer.infrastructure.remote.ssh_channel import SshCommandChannel


logger = structlog.get_logger(__name__)


class ServiceContainer:
    """Simple dependency injection container.

    Implements the Composition Root pattern for assembling
    dependencies and managing their lifecycle. The command line builds
    one directly; the API shares a process-wide instance.
    """

    _instance: ServiceContainer | None = None

    def __init__(
        self,
        settings: Settings | None = None,
        approval_gate: ApprovalGate | None = None,
        channel: RemoteCommandChannel | None = None,
        local_runner: LocalCommandRunner | None = None,
        health_transport: HealthTransport | None = None,
    ) -> None:
        self._settings = settings or get_settings()

        self._event_publisher = InMemoryEventPublisher()
        for event_type in PIPELINE_EVENT_TYPES:
            self._event_publisher.subscribe(event_type, record_pipeline_event)

        self._channel = channel or TargetCommandChannel(
            remote=SshCommandChannel(self._settings.remote),
            local=LocalCommandChannel(),
        )
        self._local_runner = local_runner or SubprocessCommandRunner()
        self._health_transport = health_transport or AiohttpHealthTransport()
        self._approval_gate = approval_gate or InMemoryApprovalGate()
        self._archive = FilesystemArtifactArchive(self._settings.pipeline.archive_root)
        self._run_repo = InMemoryPipelineRunRepository()

        # Lazily built
        self._database: DatabaseManager | None = None
        self._build_repo: BuildRecordRepository | None = None
        self._lock_service: DistributedLock | None = None
        self._orchestrator: PipelineOrchestrator | None = None
        self._background: set[asyncio.Task[Any]] = set()

    @classmethod
    def get_instance(cls) -> ServiceContainer:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        cls._instance = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def startup(self) -> None:
        if self._settings.database.enabled:
            self._database = DatabaseManager(self._settings.database)
            await self._database.initialize()
            await self._database.create_schema()
            logger.info("database_ready", host=self._settings.database.host)

    async def shutdown(self) -> None:
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        if self._database is not None:
            await self._database.close()

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        """Run a coroutine in the background, keeping a reference until done."""
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def event_publisher(self) -> InMemoryEventPublisher:
        return self._event_publisher

    @property
    def channel(self) -> RemoteCommandChannel:
        return self._channel

    @property
    def local_runner(self) -> LocalCommandRunner:
        return self._local_runner

    @property
    def approval_gate(self) -> ApprovalGate:
        return self._approval_gate

    @property
    def archive(self) -> ArtifactArchive:
        return self._archive

    @property
    def run_repo(self) -> PipelineRunRepository:
        return self._run_repo

    @property
    def build_repo(self) -> BuildRecordRepository:
        if self._build_repo is None:
            if self._database is not None:
                self._build_repo = SqlBuildRecordRepository(self._database)
            elif self._settings.pipeline.build_log_path is not None:
                self._build_repo = FileBuildRecordRepository(
                    self._settings.pipeline.build_log_path
                )
            else:
                self._build_repo = InMemoryBuildRecordRepository()
        return self._build_repo

    @property
    def lock_service(self) -> DistributedLock:
        if self._lock_service is None:
            if self._settings.redis.enabled:
                client = create_redis_client(self._settings.redis)
                self._lock_service = RedisDistributedLock(client)
            else:
                self._lock_service = InMemoryDistributedLock()
        return self._lock_service

    @property
    def container_transfer(self) -> ContainerTransfer:
        if self._settings.container.use_registry:
            return ContainerTransfer.REGISTRY
        return ContainerTransfer.IMAGE_TRANSFER

    def remote_health_transport(self, profile: ConnectionProfile) -> HealthTransport:
        return RemoteCurlHealthTransport(self._channel, profile)

    def resolver(self) -> EnvironmentResolver:
        environments = self._settings.environments
        return EnvironmentResolver(
            branch_map=environments.branch_map,
            profiles=environments.profiles,
            credentials=KeyFileCredentialProvider(self._settings.remote.key_path),
            default_environment=environments.default_environment,
        )

    def executor(self) -> DeploymentExecutor:
        return DeploymentExecutor(
            channel=self._channel,
            local=self._local_runner,
            application=self._settings.application,
            container=self._settings.container,
            settle_seconds=self._settings.pipeline.settle_seconds,
        )

    def prober(self) -> HealthProber:
        return HealthProber(
            transport=self._health_transport,
            remote_transport_factory=self.remote_health_transport,
        )

    def rollback_manager(self) -> RollbackManager:
        verification = None
        if self._settings.pipeline.verify_rollback:
            verification = RollbackVerification(
                prober=self.prober(),
                health_path=self._settings.application.health_path,
                timeout_seconds=self._settings.probe.timeout_seconds,
                interval_seconds=self._settings.probe.interval_seconds,
                via_remote=self._settings.probe.via_remote,
            )
        return RollbackManager(
            builds=self.build_repo,
            archive=self._archive,
            executor=self.executor(),
            verification=verification,
        )

    @property
    def orchestrator(self) -> PipelineOrchestrator:
        if self._orchestrator is None:
            pipeline = self._settings.pipeline
            self._orchestrator = PipelineOrchestrator(
                resolver=self.resolver(),
                executor=self.executor(),
                prober=self.prober(),
                rollback_manager=self.rollback_manager(),
                build_repo=self.build_repo,
                run_repo=self._run_repo,
                archive=self._archive,
                approval_gate=self._approval_gate,
                lock_service=self.lock_service,
                event_publisher=self._event_publisher,
                application=self._settings.application,
                probe_settings=self._settings.probe,
                run_timeout_seconds=pipeline.run_timeout_seconds,
                container_transfer=self.container_transfer,
                lock_ttl_seconds=pipeline.lock_ttl_seconds,
                artifact_root=pipeline.artifact_root or None,
            )
        return self._orchestrator


def get_service_container() -> ServiceContainer:
    return ServiceContainer.get_instance()
