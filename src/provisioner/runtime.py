"""
Composition root for a provisioner process.

:func:`build_runtime` turns settings into a store, one AWS client, the
enabled supervisors and a scheduler service. The HTTP server and the
``supervisor`` CLI commands both start from here.

Entity supervisors that drive the orchestration layer (cluster, cluster
installation) need an injected provisioner; enabling one without it is a
:class:`ConfigError` at startup rather than a failure every tick.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from provisioner.capability.aws import AWSClient
from provisioner.core.errors import ConfigError
from provisioner.core.logging import get_logger
from provisioner.core.settings import ProvisionerSettings
from provisioner.scheduling import SchedulerService, ThreadSchedulerBackend
from provisioner.store import open_store
from provisioner.store.sql_store import SQLStore
from provisioner.supervisor import (
    ClusterInstallationProvisioner,
    ClusterInstallationSupervisor,
    ClusterProvisioner,
    ClusterSupervisor,
    EntitySupervisor,
    InstallationSupervisor,
    MigrationSupervisor,
)

logger = get_logger(__name__)


@dataclass
class Runtime:
    settings: ProvisionerSettings
    store: SQLStore
    aws_client: AWSClient
    migration_supervisor: MigrationSupervisor
    scheduler: SchedulerService
    supervisors: list[EntitySupervisor] = field(default_factory=list)

    def close(self) -> None:
        self.scheduler.stop()
        self.store.close()


def build_runtime(
    settings: ProvisionerSettings,
    *,
    store: SQLStore | None = None,
    aws_client: AWSClient | None = None,
    cluster_provisioner: ClusterProvisioner | None = None,
    cluster_installation_provisioner: ClusterInstallationProvisioner | None = None,
) -> Runtime:
    """Wire a :class:`Runtime` from *settings* (the scheduler is not started)."""
    if settings.cluster_supervisor and cluster_provisioner is None:
        raise ConfigError("cluster_supervisor is enabled but no cluster provisioner was supplied")
    if settings.cluster_installation_supervisor and cluster_installation_provisioner is None:
        raise ConfigError(
            "cluster_installation_supervisor is enabled but no cluster installation "
            "provisioner was supplied"
        )

    store = store or open_store(settings.database_url)
    aws_client = aws_client or AWSClient(settings.aws_region)
    instance_id = settings.instance_id

    installations = InstallationSupervisor(store, instance_id)
    cluster_installations = ClusterInstallationSupervisor(
        store, instance_id, cluster_installation_provisioner
    )
    migrations = MigrationSupervisor(
        store,
        aws_client,
        instance_id,
        installations=installations,
        cluster_installations=cluster_installations,
        keep_database_data=settings.keep_database_data,
    )

    supervisors: list[EntitySupervisor] = []
    if settings.cluster_supervisor:
        supervisors.append(ClusterSupervisor(store, instance_id, cluster_provisioner))
    if settings.installation_supervisor:
        supervisors.append(installations)
    if settings.cluster_installation_supervisor:
        supervisors.append(cluster_installations)
    if settings.migration_supervisor:
        supervisors.append(migrations)

    scheduler = SchedulerService(
        backend=ThreadSchedulerBackend(),
        supervisors=supervisors,
        interval_seconds=settings.poll_interval_seconds,
    )
    logger.info(
        "runtime_built",
        instance_id=instance_id,
        supervisors=[s.kind for s in supervisors],
        region=settings.aws_region,
    )
    return Runtime(
        settings=settings,
        store=store,
        aws_client=aws_client,
        migration_supervisor=migrations,
        scheduler=scheduler,
        supervisors=supervisors,
    )


__all__ = ["Runtime", "build_runtime"]
