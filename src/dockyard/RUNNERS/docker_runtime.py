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
ContainerRuntime backed by the Docker Engine API (docker SDK for Python).
"""
import logging
from contextlib import contextmanager
from typing import Dict, List, Optional

import docker
from docker.errors import APIError, DockerException, NotFound
from docker.types import IPAMConfig, IPAMPool, Mount
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from ..errors import ContainerNotFoundError, ContainerRuntimeError
from .container_runtime import ContainerConfig, ContainerRuntime, ContainerState

logger = logging.getLogger(__name__)


def _is_transient(exc: BaseException) -> bool:
    """Server-side API errors are retried; missing images and bad requests are not."""
    return isinstance(exc, APIError) and not isinstance(exc, NotFound) and exc.is_server_error()


@contextmanager
def _translate(action: str, ref: str = ""):
    try:
        yield
    except NotFound:
        raise ContainerNotFoundError(ref or action)
    except DockerException as e:
        raise ContainerRuntimeError(f"Failed to {action}: {e}")


class DockerRuntime(ContainerRuntime):
    """
    Docker implementation of the runtime primitives.
    """

    def __init__(self, client: Optional[docker.DockerClient] = None):
        """
        :param client: An existing client; defaults to docker.from_env() on first use.
        """
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = docker.from_env()
                logger.debug("Docker client initialized")
            except DockerException as e:
                raise ContainerRuntimeError(f"Docker is not available: {e}")
        return self._client

    # Images

    def image_exists(self, image: str) -> bool:
        try:
            self.client.images.get(image)
            return True
        except NotFound:
            return False
        except DockerException as e:
            raise ContainerRuntimeError(f"Failed to inspect image {image}: {e}")

    @retry(
        retry=retry_if_exception(_is_transient),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    def _pull(self, image: str):
        self.client.images.pull(image)

    def pull_image(self, image: str):
        logger.info(f"Pulling image {image}")
        with _translate(f"pull image {image}", image):
            self._pull(image)

    # Containers

    def create_container(self, config: ContainerConfig) -> str:
        kwargs = {
            "image": config.image,
            "name": config.name,
            "environment": config.environment,
            "labels": config.labels,
            "detach": True,
        }
        if config.mounts:
            kwargs["mounts"] = [
                Mount(target=m.target, source=m.source, type=m.type, read_only=m.read_only)
                for m in config.mounts
            ]
        if config.port_bindings:
            kwargs["ports"] = {f"{cport}/tcp": hport for cport, hport in config.port_bindings.items()}
        if config.command:
            kwargs["command"] = config.command
        if config.entrypoint:
            kwargs["entrypoint"] = config.entrypoint
        if config.restart_policy:
            kwargs["restart_policy"] = {"Name": config.restart_policy}
        if config.memory:
            kwargs["mem_limit"] = config.memory
        if config.cpu_quota:
            kwargs["cpu_quota"] = config.cpu_quota
            kwargs["cpu_period"] = config.cpu_period

        with _translate(f"create container {config.name}", config.name):
            container = self.client.containers.create(**kwargs)
        logger.debug(f"Created container {config.name} ({container.short_id})")
        return container.id

    def start_container(self, ref: str):
        with _translate(f"start container {ref}", ref):
            self.client.containers.get(ref).start()

    def stop_container(self, ref: str, timeout: int = 10):
        with _translate(f"stop container {ref}", ref):
            self.client.containers.get(ref).stop(timeout=timeout)

    def restart_container(self, ref: str, timeout: int = 10):
        with _translate(f"restart container {ref}", ref):
            self.client.containers.get(ref).restart(timeout=timeout)

    def remove_container(self, ref: str, force: bool = False):
        with _translate(f"remove container {ref}", ref):
            self.client.containers.get(ref).remove(force=force)

    def inspect_container(self, ref: str) -> ContainerState:
        with _translate(f"inspect container {ref}", ref):
            container = self.client.containers.get(ref)
        return self._to_state(container)

    def list_containers(self, labels: Optional[Dict[str, str]] = None) -> List[ContainerState]:
        filters = {}
        if labels:
            filters["label"] = [f"{key}={value}" for key, value in labels.items()]
        with _translate("list containers"):
            containers = self.client.containers.list(all=True, filters=filters)
        return [self._to_state(c) for c in containers]

    @staticmethod
    def _to_state(container) -> ContainerState:
        attrs = container.attrs or {}
        state = attrs.get("State") or {}
        health = (state.get("Health") or {}).get("Status")
        volumes = [m.get("Name") for m in attrs.get("Mounts") or [] if m.get("Type") == "volume" and m.get("Name")]
        return ContainerState(
            id=container.id,
            name=container.name,
            status=state.get("Status", container.status),
            running=bool(state.get("Running", False)),
            dead=bool(state.get("Dead", False)),
            oom_killed=bool(state.get("OOMKilled", False)),
            exit_code=int(state.get("ExitCode") or 0),
            health=health,
            image=(attrs.get("Config") or {}).get("Image", ""),
            labels=container.labels or {},
            volumes=volumes,
        )

    # Networks

    def ensure_network(self, name: str, subnet: Optional[str] = None, gateway: Optional[str] = None):
        with _translate(f"ensure network {name}"):
            if any(n.name == name for n in self.client.networks.list(names=[name])):
                return
            ipam = None
            if subnet:
                ipam = IPAMConfig(pool_configs=[IPAMPool(subnet=subnet, gateway=gateway)])
            self.client.networks.create(name, driver="bridge", ipam=ipam)
        logger.info(f"Created Docker network: {name}")

    def connect_network(self, network: str, ref: str, aliases: Optional[List[str]] = None):
        with _translate(f"connect {ref} to network {network}", ref):
            self.client.networks.get(network).connect(ref, aliases=aliases or None)

    def disconnect_network(self, network: str, ref: str, force: bool = True):
        with _translate(f"disconnect {ref} from network {network}", ref):
            self.client.networks.get(network).disconnect(ref, force=force)

    # Volumes

    def list_volumes(self, prefix: str = "") -> List[str]:
        with _translate("list volumes"):
            volumes = self.client.volumes.list(filters={"name": prefix} if prefix else None)
        return sorted(v.name for v in volumes if v.name.startswith(prefix))

    def remove_volume(self, name: str, force: bool = False):
        with _translate(f"remove volume {name}", name):
            self.client.volumes.get(name).remove(force=force)

    # Run to completion

    def wait_container(self, ref: str, timeout: Optional[int] = None) -> int:
        try:
            result = self.client.containers.get(ref).wait(timeout=timeout)
        except NotFound:
            raise ContainerNotFoundError(ref)
        except DockerException as e:
            raise ContainerRuntimeError(f"Failed waiting for container {ref}: {e}")
        except IOError as e:
            # requests raises ReadTimeout/ConnectionError, both IOError subclasses
            raise ContainerRuntimeError(f"Timed out waiting for container {ref}: {e}")
        return int(result.get("StatusCode", -1))

    def container_logs(self, ref: str, tail: Optional[int] = None) -> str:
        with _translate(f"read logs of {ref}", ref):
            output = self.client.containers.get(ref).logs(tail=tail if tail else "all")
        return output.decode("utf-8", errors="replace")
