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
Interface between the orchestrator and a container runtime.

The installer and lifecycle manager only talk to `ContainerRuntime`; the docker
implementation lives in docker_runtime.py. Every method raises
ContainerRuntimeError (or ContainerNotFoundError) on failure.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..errors import ContainerNotFoundError


@dataclass
class MountSpec:
    """A named volume or bind mount attached to a container."""

    source: str
    target: str
    type: str = "volume"  # volume | bind
    read_only: bool = False


@dataclass
class ContainerConfig:
    """Everything needed to create one container."""

    name: str
    image: str
    environment: Dict[str, str] = field(default_factory=dict)
    labels: Dict[str, str] = field(default_factory=dict)
    mounts: List[MountSpec] = field(default_factory=list)
    port_bindings: Dict[str, str] = field(default_factory=dict)  # {container_port: host_port}
    command: List[str] = field(default_factory=list)
    entrypoint: List[str] = field(default_factory=list)
    restart_policy: Optional[str] = "unless-stopped"
    memory: Optional[int] = None
    cpu_quota: Optional[int] = None
    cpu_period: Optional[int] = None


@dataclass
class ContainerState:
    """Snapshot of a container as reported by the runtime."""

    id: str
    name: str
    status: str = "created"  # created | running | exited | dead | paused | restarting
    running: bool = False
    dead: bool = False
    oom_killed: bool = False
    exit_code: int = 0
    health: Optional[str] = None
    image: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    volumes: List[str] = field(default_factory=list)


class ContainerRuntime(ABC):
    """
    Primitives for containers, images, networks and volumes.

    Containers are addressed by name or id.
    """

    # Images

    @abstractmethod
    def image_exists(self, image: str) -> bool:
        pass

    @abstractmethod
    def pull_image(self, image: str):
        pass

    # Containers

    @abstractmethod
    def create_container(self, config: ContainerConfig) -> str:
        """
        Creates (but does not start) a container.

        :return: The container id.
        """
        pass

    @abstractmethod
    def start_container(self, ref: str):
        pass

    @abstractmethod
    def stop_container(self, ref: str, timeout: int = 10):
        """Stops a container, killing it after `timeout` seconds."""
        pass

    @abstractmethod
    def restart_container(self, ref: str, timeout: int = 10):
        pass

    @abstractmethod
    def remove_container(self, ref: str, force: bool = False):
        pass

    @abstractmethod
    def inspect_container(self, ref: str) -> ContainerState:
        """
        :raises ContainerNotFoundError: If no such container exists.
        """
        pass

    def container_exists(self, ref: str) -> bool:
        try:
            self.inspect_container(ref)
        except ContainerNotFoundError:
            return False
        return True

    @abstractmethod
    def list_containers(self, labels: Optional[Dict[str, str]] = None) -> List[ContainerState]:
        """Lists all containers (running or not) carrying every given label."""
        pass

    # Networks

    @abstractmethod
    def ensure_network(self, name: str, subnet: Optional[str] = None, gateway: Optional[str] = None):
        pass

    @abstractmethod
    def connect_network(self, network: str, ref: str, aliases: Optional[List[str]] = None):
        pass

    @abstractmethod
    def disconnect_network(self, network: str, ref: str, force: bool = True):
        pass

    # Volumes

    @abstractmethod
    def list_volumes(self, prefix: str = "") -> List[str]:
        """Names of volumes starting with `prefix`."""
        pass

    @abstractmethod
    def remove_volume(self, name: str, force: bool = False):
        pass

    # Run to completion

    def run_container(self, config: ContainerConfig) -> str:
        """Creates and starts a container, returning its id."""
        container_id = self.create_container(config)
        self.start_container(container_id)
        return container_id

    @abstractmethod
    def wait_container(self, ref: str, timeout: Optional[int] = None) -> int:
        """
        Blocks until the container exits.

        :return: The exit code.
        :raises ContainerRuntimeError: If the wait times out.
        """
        pass

    @abstractmethod
    def container_logs(self, ref: str, tail: Optional[int] = None) -> str:
        pass
