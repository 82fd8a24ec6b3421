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
Lifecycle of installed instances: start, stop, restart, remove and status.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from ..errors import (
    AlreadyRunningError,
    AlreadyStoppedError,
    ContainerNotFoundError,
    ContainerRuntimeError,
    InstanceNotFoundError,
)
from ..MODELS.catalog import ServiceCatalog
from ..MODELS.instance import ContainerInfo, ContainerStatus, Instance, InstanceStatus
from ..RUNNERS.container_runtime import ContainerRuntime, ContainerState
from ..STORE.config_store import ConfigStore
from .dns_manager import DNSManager
from .environment_manager import EnvironmentManager
from .multi_container import InitContainerRunner
from .network_manager import NetworkManager
from .volume_manager import VolumeManager

logger = logging.getLogger(__name__)


def container_status(state: Optional[ContainerState]) -> ContainerStatus:
    """
    Maps a runtime snapshot onto a container status. A missing container counts as failed.
    """
    if state is None:
        return ContainerStatus.FAILED
    if state.running:
        return ContainerStatus.RUNNING
    if state.dead or state.oom_killed:
        return ContainerStatus.FAILED
    return ContainerStatus.STOPPED


def aggregate_status(statuses: List[str]) -> InstanceStatus:
    """
    Overall status of a multi-container instance.

    Any failed container fails the instance. All running is running, all stopped
    is stopped, and a mix of running and stopped is reported as running.
    """
    if not statuses:
        return InstanceStatus.UNKNOWN
    values = [str(getattr(s, "value", s)) for s in statuses]
    if ContainerStatus.FAILED.value in values:
        return InstanceStatus.FAILED
    if all(v == ContainerStatus.RUNNING.value for v in values):
        return InstanceStatus.RUNNING
    if all(v != ContainerStatus.RUNNING.value for v in values):
        return InstanceStatus.STOPPED
    return InstanceStatus.RUNNING


class ServiceManager:
    """
    Operates on instances that are already in the store.
    """

    def __init__(self,
                 runtime: ContainerRuntime,
                 store: ConfigStore,
                 catalog: Optional[ServiceCatalog] = None,
                 dns: Optional[DNSManager] = None):
        """
        :param runtime: Container runtime.
        :param store: Instance store; every status change is written back through it.
        :param catalog: Needed only to re-run init containers on restart.
        :param dns: Hosts-file manager for removing instance domains.
        """
        self.runtime = runtime
        self.store = store
        self.catalog = catalog
        self.dns = dns or DNSManager()

        config = store.load()
        self.settings = config.orchestration
        self.network = NetworkManager(runtime, config.network)
        self.volumes = VolumeManager(runtime, self.settings.prefix)
        self.env_manager = EnvironmentManager(str(store.services_dir))

    def get(self, name: str) -> Instance:
        return self.store.get_instance(name)

    def list(self) -> List[Instance]:
        return self.store.list_instances()

    def _inspect(self, ref: str) -> Optional[ContainerState]:
        try:
            return self.runtime.inspect_container(ref)
        except ContainerNotFoundError:
            return None

    def _set_status(self, name: str, status: InstanceStatus, containers: Optional[Dict[str, str]] = None):
        def mutate(instance):
            instance.status = status
            for info in instance.containers:
                if containers and info.name in containers:
                    info.status = containers[info.name]

        self.store.update_instance(name, mutate)

    # Start / stop / restart

    def start(self, name: str):
        """
        Starts an instance. Multi-container instances start in creation order with
        a pause between containers.

        :raises AlreadyRunningError: If everything is already running.
        """
        instance = self.get(name)
        if not instance.is_multi_container:
            state = self._inspect(instance.container_name)
            if state is None:
                raise ContainerNotFoundError(instance.container_name)
            if state.running:
                raise AlreadyRunningError(name)
            self.runtime.start_container(instance.container_name)
            self._set_status(name, InstanceStatus.RUNNING)
            logger.info(f"Started {name}")
            return

        pending = []
        for info in instance.containers:
            state = self._inspect(info.full_name)
            if state is None:
                raise ContainerNotFoundError(info.full_name)
            if not state.running:
                pending.append(info)
        if not pending:
            raise AlreadyRunningError(name)

        statuses = {}
        try:
            for idx, info in enumerate(pending):
                logger.info(f"Starting container {info.full_name}")
                self.runtime.start_container(info.full_name)
                statuses[info.name] = ContainerStatus.RUNNING.value
                if idx < len(pending) - 1:
                    time.sleep(self.settings.start_settle_delay)
        finally:
            if statuses:
                self._set_status(name, InstanceStatus.RUNNING, statuses)

    def stop(self, name: str):
        """
        Stops an instance. Multi-container instances stop in reverse creation order.

        :raises AlreadyStoppedError: If nothing is running.
        """
        instance = self.get(name)
        timeout = self.settings.stop_timeout
        if not instance.is_multi_container:
            state = self._inspect(instance.container_name)
            if state is None or not state.running:
                raise AlreadyStoppedError(name)
            self.runtime.stop_container(instance.container_name, timeout=timeout)
            self._set_status(name, InstanceStatus.STOPPED)
            logger.info(f"Stopped {name}")
            return

        running = []
        for info in reversed(instance.containers):
            state = self._inspect(info.full_name)
            if state is not None and state.running:
                running.append(info)
        if not running:
            raise AlreadyStoppedError(name)

        statuses = {}
        for info in running:
            logger.info(f"Stopping container {info.full_name}")
            self.runtime.stop_container(info.full_name, timeout=timeout)
            statuses[info.name] = ContainerStatus.STOPPED.value
        self._set_status(name, InstanceStatus.STOPPED, statuses)

    def restart(self, name: str, run_init: bool = False):
        """
        Restarts an instance.

        With `run_init`, a multi-container instance is stopped, its init containers
        run again, and its containers are started in creation order.
        """
        instance = self.get(name)
        timeout = self.settings.stop_timeout

        if not instance.is_multi_container:
            self.runtime.restart_container(instance.container_name, timeout=timeout)
            self._set_status(name, InstanceStatus.RUNNING)
            return

        if run_init:
            for info in reversed(instance.containers):
                state = self._inspect(info.full_name)
                if state is not None and state.running:
                    self.runtime.stop_container(info.full_name, timeout=timeout)
            spec = self._spec_for(instance)
            if spec is not None and spec.init_containers:
                runner = InitContainerRunner(
                    self.runtime, self.network, self.settings.prefix, self.settings.init_container_timeout
                )
                runner.run_all(instance.name, spec.init_containers)
            action = self.runtime.start_container
        else:
            def action(ref):
                self.runtime.restart_container(ref, timeout=timeout)

        statuses = {}
        for idx, info in enumerate(instance.containers):
            action(info.full_name)
            statuses[info.name] = ContainerStatus.RUNNING.value
            if idx < len(instance.containers) - 1:
                time.sleep(self.settings.start_settle_delay)
        self._set_status(name, InstanceStatus.RUNNING, statuses)

    def _spec_for(self, instance: Instance):
        if self.catalog is None or not self.catalog.has_service(instance.service_type):
            logger.warning(f"No catalog entry for {instance.service_type}, skipping init containers")
            return None
        service = self.catalog.get_service(instance.service_type)
        if instance.version not in service.versions:
            logger.warning(f"Version {instance.version} of {instance.service_type} no longer in catalog")
            return None
        return service.versions[instance.version]

    # Remove

    def remove(self, name: str, force: bool = False, remove_volumes: bool = False) -> List[str]:
        """
        Removes an instance's containers and its store record.

        Containers are stopped, detached and removed in reverse creation order.
        Only volumes carrying the managed prefix are removed, and only when
        `remove_volumes` is set; env files go with them.

        A container that fails to stop is removed forcibly. Failed steps are
        reported as warnings and the store record is removed regardless.

        :param force: Remove running containers without stopping them first.
        :return: Warnings collected along the way.
        """
        instance = self.get(name)
        warnings: List[str] = []
        volume_names: List[str] = []

        if instance.is_multi_container:
            refs = [info.full_name for info in reversed(instance.containers)]
        else:
            refs = [instance.container_name] if instance.container_name else []

        for ref in refs:
            state = self._inspect(ref)
            if state is None:
                warnings.append(f"Container {ref} not found")
                logger.warning(warnings[-1])
                continue
            volume_names.extend(v for v in state.volumes if v not in volume_names)

            kill = force
            if state.running and not force:
                try:
                    self.runtime.stop_container(ref, timeout=self.settings.stop_timeout)
                except ContainerRuntimeError as e:
                    warnings.append(f"Could not stop {ref}: {e}")
                    logger.warning(warnings[-1])
                    kill = True
            if not self.network.disconnect(ref, best_effort=True):
                warnings.append(f"Could not disconnect {ref} from {self.network.name}")
            try:
                self.runtime.remove_container(ref, force=kill)
            except ContainerRuntimeError as e:
                warnings.append(f"Could not remove container {ref}: {e}")
                logger.warning(warnings[-1])
                continue
            logger.info(f"Removed container {ref}")

        if remove_volumes:
            managed = [v for v in volume_names if self.volumes.is_managed(v)]
            removed = self.volumes.remove_volumes(managed)
            for volume in managed:
                if volume not in removed:
                    warnings.append(f"Could not remove volume {volume}")
            containers = [info.name for info in instance.containers]
            self.env_manager.delete_env_files(name, containers)

        prefs = self.store.get_preferences()
        if prefs.dns_setup == "hosts" and instance.proxy.enabled and not self.dns.remove_domain(name, prefs.domain):
            warnings.append(f"Could not remove DNS entry for {name}")

        self.store.remove_instance(name)
        return warnings

    # Status

    def get_status(self, name: str) -> InstanceStatus:
        """Status computed live from the runtime, without touching the store."""
        status, _ = self._observe(self.get(name))
        return status

    def _observe(self, instance: Instance):
        """
        :return: (instance status, {container name: container status})
        """
        if not instance.is_multi_container:
            state = self._inspect(instance.container_name)
            if state is None:
                return InstanceStatus.UNKNOWN, {}
            status = container_status(state)
            return InstanceStatus(status.value), {}

        statuses = {}
        for info in instance.containers:
            statuses[info.name] = container_status(self._inspect(info.full_name)).value
        return aggregate_status(list(statuses.values())), statuses

    def refresh_status(self, name: str) -> InstanceStatus:
        """
        Recomputes the status of one instance and writes it back.
        """
        status, statuses = self._observe(self.get(name))
        self._set_status(name, status, statuses)
        return status

    def refresh_all(self, max_workers: int = 8) -> Dict[str, InstanceStatus]:
        """
        Refreshes every instance concurrently, one task per instance, and waits for all.
        Instances removed while the refresh runs are skipped; runtime errors mark
        the instance unknown.
        """
        names = [instance.name for instance in self.list()]
        if not names:
            return {}

        def refresh(name):
            try:
                return name, self.refresh_status(name)
            except InstanceNotFoundError:
                return name, None
            except ContainerRuntimeError as e:
                logger.warning(f"Could not refresh status of {name}: {e}")
                return name, InstanceStatus.UNKNOWN

        with ThreadPoolExecutor(max_workers=min(max_workers, len(names))) as pool:
            results = list(pool.map(refresh, names))

        return {name: status for name, status in results if status is not None}

    # Logs and connection details

    def logs(self, name: str, container: Optional[str] = None, tail: Optional[int] = 100) -> str:
        """
        Logs of the instance's main container, or of a named container of a
        multi-container instance.
        """
        instance = self.get(name)
        ref = instance.main_container_name()
        if container:
            info: Optional[ContainerInfo] = instance.get_container(container)
            if info is None:
                raise ContainerNotFoundError(f"{name}/{container}")
            ref = info.full_name
        return self.runtime.container_logs(ref, tail=tail)

    def connection_info(self, name: str) -> Dict[str, object]:
        instance = self.get(name)
        host = instance.network.aliases[0] if instance.network.aliases else instance.name
        port = instance.proxy.port
        if not port and ":" in instance.connection_string and "://" not in instance.connection_string:
            port = int(instance.connection_string.rsplit(":", 1)[1])
        return {
            "instance": instance.name,
            "host": host,
            "port": port,
            "url": instance.url,
            "connection_string": instance.connection_string,
            "aliases": list(instance.network.aliases),
            "network": instance.network.name,
        }
