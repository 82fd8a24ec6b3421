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
Installation of catalog services as container instances.
"""
import logging
from typing import Dict, List, Optional

from ..errors import (
    ContainerRuntimeError,
    DockyardError,
    InstallationCancelled,
    InstanceExistsError,
    ValidationError,
)
from ..MODELS.catalog import CatalogService, ServiceCatalog, ServiceSpec
from ..MODELS.install_options import DataDecision, ExistingData, InstallOptions
from ..MODELS.instance import Instance, InstanceStatus, NetworkConfig, ProxyConfig, ResourceConfig
from ..MODELS.settings import Config
from ..RUNNERS.container_runtime import ContainerConfig, ContainerRuntime
from ..RUNNERS.dependency_resolver import DependencyResolver
from ..STORE.config_store import ConfigStore
from ..UTILS.labels import HTTP_PROTOCOLS, router_name, single_container_labels
from ..UTILS.naming import container_name, default_instance_name, generate_instance_name, single_container_aliases
from ..UTILS.resources import ResourceLimits
from .dns_manager import DNSManager
from .environment_manager import EnvironmentManager, merge_environment
from .multi_container import MultiContainerInstaller
from .network_manager import NetworkManager
from .service_manager import ServiceManager
from .volume_manager import VolumeManager

logger = logging.getLogger(__name__)


class Installer:
    """
    Turns a catalog service into a running instance, installing its missing
    dependencies first.
    """

    def __init__(self,
                 runtime: ContainerRuntime,
                 store: ConfigStore,
                 catalog: ServiceCatalog,
                 dns: Optional[DNSManager] = None,
                 lifecycle: Optional[ServiceManager] = None):
        """
        :param runtime: Container runtime.
        :param store: Instance store.
        :param catalog: Loaded service catalog.
        :param dns: Hosts-file manager, used when preferences.dns_setup is "hosts".
        :param lifecycle: Lifecycle manager used to tear down instances being replaced.
        """
        self.runtime = runtime
        self.store = store
        self.catalog = catalog
        self.dns = dns or DNSManager()
        self.resolver = DependencyResolver(catalog, store)
        self.env_manager = EnvironmentManager(str(store.services_dir))

        config = store.load()
        self.network = NetworkManager(runtime, config.network)
        self.volumes = VolumeManager(runtime, config.orchestration.prefix)
        self.lifecycle = lifecycle or ServiceManager(runtime, store, catalog, dns=self.dns)
        self.multi = MultiContainerInstaller(
            runtime, store, self.network, self.volumes, self.env_manager, self.dns
        )

    def install(self, options: InstallOptions) -> Instance:
        """
        Installs a service.

        Missing required dependencies are installed first, each as an internal
        instance named after its service. They stay installed if the service
        itself then fails.

        :param options: What to install and how.
        :return: The running instance.
        :raises InstallationCancelled: If the user declined a replace or data prompt.
        """
        if not options.skip_dependencies and not options.is_dependency:
            for dep_options in self.plan_dependencies(options):
                logger.info(f"Installing dependency {dep_options.service_name} ({dep_options.version})")
                self._install_one(dep_options)

        return self._install_one(options)

    def plan_dependencies(self, options: InstallOptions) -> List[InstallOptions]:
        """
        Resolves the dependencies of a service into install options, dependencies first.

        :raises CircularDependencyError: If the dependency graph has a cycle.
        :raises DockyardError: If dependencies are missing and auto install is disabled.
        """
        result = self.resolver.resolve(options.service_name, options.version)

        for node in self.resolver.get_optional_dependencies(result):
            logger.info(f"Optional dependency {node.service_name} is not installed, skipping")

        missing = self.resolver.get_missing_dependencies(result)
        if missing and not options.auto_install_deps:
            names = ", ".join(node.service_name for node in missing)
            raise DockyardError(f"Missing required dependencies for {options.service_name}: {names}")

        return [
            InstallOptions(
                service_name=node.service_name,
                version=node.version,
                instance_name=node.service_name,
                environment=dict(node.environment),
                internal=True,
                is_dependency=True,
                skip_dependencies=True,
                auto_install_deps=False,
            )
            for node in missing
        ]

    def _install_one(self, options: InstallOptions) -> Instance:
        config = self.store.load()
        service = self.catalog.get_service(options.service_name)
        version = service.resolve_version(options.version)
        spec = service.versions[version]
        spec.validate_spec()

        instance_name = self._instance_name(options, version, config)

        if self.store.has_instance(instance_name):
            self._replace_existing(instance_name, options)

        reused = {}
        if not options.is_dependency:
            reused = self._handle_existing_data(instance_name, spec, options)

        if spec.is_multi_container:
            logger.info(f"Installing multi-container service {service.name} as {instance_name}")
            return self.multi.install(options, service, spec, instance_name, version, config, reused)

        return self._install_single(options, service, spec, instance_name, version, config, reused.get(None))

    def _instance_name(self, options: InstallOptions, version: str, config: Config) -> str:
        if options.instance_name:
            return options.instance_name
        if options.unique_name:
            return generate_instance_name(
                options.service_name, version, self.store.has_instance,
                config.orchestration.max_name_attempts,
            )
        return default_instance_name(options.service_name, version)

    def _replace_existing(self, instance_name: str, options: InstallOptions):
        """
        Removes an existing instance of the same name, keeping its volumes.

        :raises InstanceExistsError: For dependency installs, or when nobody confirmed the replace.
        :raises InstallationCancelled: If the confirmation callback declined.
        """
        if options.is_dependency:
            raise InstanceExistsError(instance_name)

        if not options.replace:
            if options.confirm_replace is None:
                raise InstanceExistsError(instance_name)
            if not options.confirm_replace(instance_name):
                raise InstallationCancelled(f"Installation cancelled: instance '{instance_name}' already exists")

        logger.info(f"Removing existing instance {instance_name}")
        self.lifecycle.remove(instance_name, force=False, remove_volumes=False)

    def find_existing_data(self, instance_name: str, spec: ServiceSpec) -> ExistingData:
        """
        Looks for volumes and env files left behind by an earlier install of the same name.
        """
        others = [i.name for i in self.store.list_instances()]
        containers = [c.name for c in spec.containers]
        return ExistingData(
            instance_name=instance_name,
            volumes=self.volumes.find_instance_volumes(instance_name, others),
            env_files=self.env_manager.find_env_files(instance_name, containers),
        )

    def _handle_existing_data(self,
                              instance_name: str,
                              spec: ServiceSpec,
                              options: InstallOptions) -> Dict[Optional[str], Dict[str, str]]:
        """
        Applies the reuse / delete / cancel decision to leftover data.

        :return: Stored environments to reuse, keyed by container name (None for single-container).
        """
        data = self.find_existing_data(instance_name, spec)
        if not data.has_data:
            return {}

        if options.force_clean_data:
            decision = DataDecision.DELETE
        elif options.reuse_existing_data:
            decision = DataDecision.REUSE
        elif options.decide_existing_data is not None:
            decision = DataDecision(options.decide_existing_data(data))
        else:
            decision = DataDecision.REUSE

        if decision == DataDecision.CANCEL:
            raise InstallationCancelled("Installation cancelled by user")

        if decision == DataDecision.DELETE:
            logger.info(f"Deleting existing data for {instance_name}")
            self.volumes.remove_volumes(data.volumes)
            self.env_manager.delete_env_files(instance_name, paths=data.env_files)
            return {}

        logger.info(f"Reusing existing data for {instance_name}")
        if spec.is_multi_container:
            return {c.name: self.env_manager.load(instance_name, c.name) for c in spec.containers}
        return {None: self.env_manager.load(instance_name)}

    def _install_single(self,
                        options: InstallOptions,
                        service: CatalogService,
                        spec: ServiceSpec,
                        instance_name: str,
                        version: str,
                        config: Config,
                        reused_env: Optional[Dict[str, str]]) -> Instance:
        prefs = config.preferences
        prefix = config.orchestration.prefix
        tls = prefs.protocol == "https"

        env = merge_environment(spec.environment, options.environment, reused_env)

        memory = options.memory_limit or (spec.resources.memory_max if spec.resources else None)
        cpus = options.cpu_limit or (spec.resources.cpu_max if spec.resources else None)
        try:
            limits = ResourceLimits.from_strings(memory, cpus)
        except ValueError as e:
            raise ValidationError("resources", str(e))

        name = container_name(instance_name, prefix)
        aliases = single_container_aliases(service.name, instance_name)
        container_config = ContainerConfig(
            name=name,
            image=spec.image,
            environment=env,
            labels=single_container_labels(
                service.name, instance_name, version, spec.protocol, spec.port,
                options.internal, prefs.domain, tls, prefix,
            ),
            mounts=self.volumes.build_mounts(instance_name, spec.volumes, None, options.volumes),
            port_bindings=dict(options.port_mappings),
            command=list(spec.command),
            memory=limits.memory,
            cpu_quota=limits.cpu_quota,
            cpu_period=limits.cpu_period,
        )

        if not self.runtime.image_exists(spec.image):
            self.runtime.pull_image(spec.image)
        self.network.ensure_network()

        exposed = not options.internal and spec.protocol in HTTP_PROTOCOLS
        url = f"{prefs.protocol}://{instance_name}.{prefs.domain}" if exposed else ""
        instance = Instance(
            name=instance_name,
            service_type=service.name,
            version=version,
            container_name=name,
            dependencies=spec.dependency_names(),
            is_dependency=options.is_dependency,
            internal=options.internal,
            url=url,
            connection_string=url or f"{instance_name}:{spec.port}",
            network=NetworkConfig(name=self.network.name, aliases=aliases, port_mappings=dict(options.port_mappings)),
            resources=ResourceConfig(memory_limit=memory, cpu_limit=cpus),
            proxy=ProxyConfig(
                enabled=exposed,
                router=router_name(instance_name, prefix) if exposed else "",
                host=f"{instance_name}.{prefs.domain}" if exposed else "",
                port=spec.port if exposed else 0,
                tls=tls and exposed,
            ),
            volumes=dict(options.volumes),
            environment=env,
        )

        container_id = None
        try:
            logger.info(f"Creating container {name}")
            container_id = self.runtime.create_container(container_config)
            self.network.connect(container_id, aliases)
            self.runtime.start_container(container_id)
            instance.container_id = container_id
            instance.status = InstanceStatus.RUNNING
            self.store.add_instance(instance)
        except Exception:
            if container_id:
                logger.error(f"Installation of {instance_name} failed, removing container {name}")
                self._cleanup_single(container_id)
            raise

        try:
            self.env_manager.save(instance_name, env)
        except OSError as e:
            logger.warning(f"Could not save environment for {instance_name}: {e}")

        if prefs.dns_setup == "hosts" and exposed:
            self.dns.add_domain(instance_name, prefs.domain)

        logger.info(f"Installed {service.name} {version} as {instance_name}")
        return instance

    def _cleanup_single(self, container_id: str):
        self.network.disconnect(container_id, best_effort=True)
        try:
            self.runtime.remove_container(container_id, force=True)
        except ContainerRuntimeError as e:
            logger.warning(f"Could not remove container {container_id}: {e}")
