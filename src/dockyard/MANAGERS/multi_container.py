# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Installation of services made of several containers: init containers first,
then every service container created in declaration order and started in
dependency order, with full rollback when any step fails.
"""
import logging
import time
from typing import Dict, List, Optional

from ..errors import (
    ContainerRuntimeError,
    ContainerStartupCycleError,
    InitContainerCycleError,
    InitContainerError,
    ValidationError,
)
from ..MODELS.catalog import CatalogService, InitContainer, ServiceSpec
from ..MODELS.install_options import InstallOptions
from ..MODELS.instance import (
    ContainerInfo,
    ContainerStatus,
    Instance,
    InstanceStatus,
    NetworkConfig,
    ProxyConfig,
    ResourceConfig,
)
from ..MODELS.settings import Config
from ..RUNNERS.container_runtime import ContainerConfig, ContainerRuntime
from ..STORE.config_store import ConfigStore
from ..UTILS.graph import topological_sort
from ..UTILS.labels import multi_container_labels, router_name
from ..UTILS.naming import init_container_name, multi_container_aliases, multi_container_name
from ..UTILS.resources import ResourceLimits
from .dns_manager import DNSManager
from .environment_manager import EnvironmentManager, merge_environment
from .network_manager import NetworkManager
from .volume_manager import VolumeManager

logger = logging.getLogger(__name__)


def container_start_order(spec: ServiceSpec) -> List[str]:
    """
    Orders the containers of a spec so each starts after the siblings it depends on.

    `depends_on` entries naming other services are ignored here; the dependency
    resolver takes care of them.

    :raises ContainerStartupCycleError: If sibling containers depend on each other in a loop.
    """
    names = [c.name for c in spec.containers]
    edges = {c.name: list(c.depends_on) for c in spec.containers}
    return topological_sort(names, edges, ContainerStartupCycleError)


def init_container_order(init_containers: List[InitContainer]) -> List[InitContainer]:
    """
    :raises InitContainerCycleError: If init containers depend on each other in a loop.
    """
    by_name = {c.name: c for c in init_containers}
    edges = {c.name: list(c.depends_on) for c in init_containers}
    ordered = topological_sort([c.name for c in init_containers], edges, InitContainerCycleError)
    return [by_name[name] for name in ordered]


class InitContainerRunner:
    """
    Runs init containers to completion, one at a time.
    """

    def __init__(self, runtime: ContainerRuntime, network: NetworkManager, prefix: str, timeout: int = 300):
        self.runtime = runtime
        self.network = network
        self.prefix = prefix
        self.timeout = timeout

    def run_all(self, instance_name: str, init_containers: List[InitContainer]):
        """
        Runs every init container in dependency order.

        :raises InitContainerCycleError: Before anything runs, if the order cannot be computed.
        :raises InitContainerError: On the first non-zero exit; the rest are not run.
        """
        if not init_containers:
            return
        ordered = init_container_order(init_containers)
        logger.info(f"Running {len(ordered)} init container(s) for {instance_name}")
        for init in ordered:
            self.run_one(instance_name, init)

    def run_one(self, instance_name: str, init: InitContainer):
        name = init_container_name(instance_name, init.name, self.prefix)
        if not self.runtime.image_exists(init.image):
            self.runtime.pull_image(init.image)

        config = ContainerConfig(
            name=name,
            image=init.image,
            environment=dict(init.environment),
            labels={
                "managed-by": self.prefix,
                f"{self.prefix}.instance": instance_name,
                f"{self.prefix}.init": init.name,
            },
            command=list(init.command),
            restart_policy=None,
        )

        container_id = self.runtime.create_container(config)
        try:
            self.network.connect(container_id, [])
            self.runtime.start_container(container_id)
            exit_code = self.runtime.wait_container(container_id, timeout=self.timeout)
            if exit_code != 0:
                raise InitContainerError(init.name, exit_code, self._logs(container_id))
            logger.info(f"Init container {init.name} completed")
        finally:
            self._discard(container_id)

    def _logs(self, container_id: str) -> str:
        try:
            return self.runtime.container_logs(container_id)
        except ContainerRuntimeError as e:
            logger.warning(f"Could not read init container logs: {e}")
            return ""

    def _discard(self, container_id: str):
        self.network.disconnect(container_id, best_effort=True)
        try:
            self.runtime.remove_container(container_id, force=True)
        except ContainerRuntimeError as e:
            logger.warning(f"Could not remove init container {container_id}: {e}")


class MultiContainerInstaller:
    """
    Installs one multi-container instance.
    """

    def __init__(self,
                 runtime: ContainerRuntime,
                 store: ConfigStore,
                 network: NetworkManager,
                 volumes: VolumeManager,
                 env_manager: EnvironmentManager,
                 dns: DNSManager):
        self.runtime = runtime
        self.store = store
        self.network = network
        self.volumes = volumes
        self.env_manager = env_manager
        self.dns = dns

    def install(self,
                options: InstallOptions,
                service: CatalogService,
                spec: ServiceSpec,
                instance_name: str,
                version: str,
                config: Config,
                reused_env: Optional[Dict[str, Dict[str, str]]] = None) -> Instance:
        """
        Installs a multi-container service.

        :param reused_env: Stored environment per container name, layered last.
        :return: The persisted instance.
        """
        settings = config.orchestration
        prefix = settings.prefix
        prefs = config.preferences
        tls = prefs.protocol == "https"
        reused_env = reused_env or {}

        start_order = container_start_order(spec)
        primary_spec = spec.primary_container()
        limits = self._limits(options, spec)

        runner = InitContainerRunner(self.runtime, self.network, prefix, settings.init_container_timeout)
        runner.run_all(instance_name, spec.init_containers)

        instance = Instance(
            name=instance_name,
            service_type=service.name,
            version=version,
            status=InstanceStatus.UNKNOWN,
            is_multi_container=True,
            dependencies=spec.dependency_names(),
            is_dependency=options.is_dependency,
            internal=options.internal,
            network=NetworkConfig(name=self.network.name, port_mappings=dict(options.port_mappings)),
            resources=ResourceConfig(memory_limit=options.memory_limit, cpu_limit=options.cpu_limit),
            volumes=dict(options.volumes),
        )
        environments: Dict[str, Dict[str, str]] = {}

        try:
            self.network.ensure_network()

            for container in spec.containers:
                is_primary = container.name == primary_spec.name
                port = 0
                if is_primary:
                    port = NetworkManager.first_container_port(container.ports) or spec.port

                env = merge_environment(
                    spec.environment,
                    container.environment,
                    options.environment,
                    reused_env.get(container.name),
                )
                environments[container.name] = env
                full_name = multi_container_name(instance_name, container.name, prefix)
                container_limits = limits.get(container.name) or ResourceLimits()

                if not self.runtime.image_exists(container.image):
                    self.runtime.pull_image(container.image)

                container_config = ContainerConfig(
                    name=full_name,
                    image=container.image,
                    environment=env,
                    labels=multi_container_labels(
                        service.name, instance_name, container.name, is_primary,
                        options.internal, port, prefs.domain, tls, prefix,
                    ),
                    mounts=self.volumes.build_mounts(
                        instance_name, container.volumes, container.name,
                        options.volumes if is_primary else None,
                    ),
                    port_bindings=dict(options.port_mappings) if is_primary else {},
                    command=list(container.command),
                    entrypoint=list(container.entrypoint),
                    memory=container_limits.memory,
                    cpu_quota=container_limits.cpu_quota,
                    cpu_period=container_limits.cpu_period,
                )

                logger.info(f"Creating container {full_name}")
                container_id = self.runtime.create_container(container_config)
                instance.containers.append(ContainerInfo(
                    name=container.name,
                    id=container_id,
                    full_name=full_name,
                    primary=is_primary,
                    status=ContainerStatus.CREATED.value,
                    ports=list(container.ports),
                    image=container.image,
                ))

                aliases = multi_container_aliases(instance_name, service.name, container.name, is_primary, prefix)
                self.network.connect(container_id, aliases)
                if is_primary:
                    instance.network.aliases = aliases
                    if port and not options.internal:
                        instance.proxy = ProxyConfig(
                            enabled=True,
                            router=router_name(instance_name, prefix),
                            host=f"{instance_name}.{prefs.domain}",
                            port=port,
                            tls=tls,
                        )
                time.sleep(settings.create_pause)

            for idx, name in enumerate(start_order):
                info = instance.get_container(name)
                logger.info(f"Starting container {info.full_name}")
                self.runtime.start_container(info.id)
                info.status = ContainerStatus.RUNNING.value
                if idx < len(start_order) - 1:
                    time.sleep(settings.install_settle_delay)

            instance.status = InstanceStatus.RUNNING
            primary_info = instance.primary_container()
            instance.container_name = primary_info.full_name
            instance.container_id = primary_info.id
            if instance.proxy.enabled:
                instance.url = f"{prefs.protocol}://{instance.proxy.host}"
            primary_port = instance.proxy.port or spec.port
            instance.connection_string = instance.url or f"{instance_name}:{primary_port}"
            instance.environment = environments.get(primary_info.name, {})
            self.store.add_instance(instance)
        except Exception:
            logger.error(f"Installation of {instance_name} failed, rolling back")
            self.rollback(instance)
            raise

        for name, env in environments.items():
            try:
                self.env_manager.save(instance_name, env, container=name)
            except OSError as e:
                logger.warning(f"Could not save environment for {instance_name}/{name}: {e}")

        if prefs.dns_setup == "hosts" and instance.proxy.enabled:
            self.dns.add_domain(instance_name, prefs.domain)

        return instance

    def rollback(self, instance: Instance) -> List[str]:
        """
        Disconnects and removes every container recorded on the instance.
        Individual failures are logged and skipped.

        :return: Full names of the containers that were removed.
        """
        removed = []
        for info in instance.containers:
            self.network.disconnect(info.id or info.full_name, best_effort=True)
            try:
                self.runtime.remove_container(info.id or info.full_name, force=True)
                removed.append(info.full_name)
            except ContainerRuntimeError as e:
                logger.warning(f"Rollback could not remove {info.full_name}: {e}")
        return removed

    @staticmethod
    def _limits(options: InstallOptions, spec: ServiceSpec) -> Dict[str, ResourceLimits]:
        """
        Resource limits per container: the user's limits when given, otherwise the
        container's catalog maximums.

        :raises ValidationError: On an unparsable limit, before anything is created.
        """
        limits = {}
        for container in spec.containers:
            resources = container.resources
            memory = options.memory_limit or (resources.memory_max if resources else None)
            cpus = options.cpu_limit or (resources.cpu_max if resources else None)
            try:
                limits[container.name] = ResourceLimits.from_strings(memory, cpus)
            except ValueError as e:
                raise ValidationError(f"containers.{container.name}.resources", str(e))
        return limits
