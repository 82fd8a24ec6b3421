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
Shared fixtures: an in-memory container runtime and a small catalog.
"""
import pytest

from dockyard.errors import ContainerNotFoundError, ContainerRuntimeError
from dockyard.MANAGERS.dns_manager import DNSManager
from dockyard.MANAGERS.installer import Installer
from dockyard.MANAGERS.service_manager import ServiceManager
from dockyard.PARSERS.catalog_parser import CatalogParser
from dockyard.RUNNERS.container_runtime import ContainerRuntime, ContainerState
from dockyard.STORE.config_store import ConfigStore


CATALOG_YAML = """
version: "1"
services:
  cache:
    category: cache
    latest_version: "7.2"
    versions:
      "7.2":
        image: redis:7.2
        port: 6379
        protocol: tcp
        environment:
          MAXMEMORY: 100mb
        volumes:
          - /data
      "6.2":
        image: redis:6.2
        port: 6379
        protocol: tcp
  postgres:
    category: database
    versions:
      "16":
        image: postgres:16
        port: 5432
        protocol: tcp
        environment:
          POSTGRES_PASSWORD: postgres
        volumes:
          - /var/lib/postgresql/data
        resources:
          memory_max: 1g
          cpu_max: "1.5"
      "15":
        image: postgres:15
        port: 5432
        protocol: tcp
  clickhouse:
    category: database
    versions:
      "24.1":
        image: clickhouse/clickhouse-server:24.1
        port: 8123
        protocol: http
  webapp:
    category: app
    versions:
      "1.0":
        image: example/webapp:1.0
        port: 8080
        protocol: http
        environment:
          DATABASE_HOST: postgres
        dependencies:
          - name: postgres
            version: "16"
            environment:
              POSTGRES_DB: webapp
          - name: cache
            required: false
  tracing:
    category: monitoring
    versions:
      "1.0":
        port: 8080
        protocol: http
        environment:
          LOG_LEVEL: info
          CLICKHOUSE_HOST: clickhouse
        init_containers:
          - name: migrate
            image: tracing/migrate:1.0
            command: ["migrate", "up"]
            depends_on: [schema]
          - name: schema
            image: tracing/migrate:1.0
            command: ["schema", "create"]
        containers:
          - name: collector
            image: tracing/collector:1.0
            ports: ["4317:4317"]
            depends_on: [query, clickhouse]
          - name: query
            image: tracing/query:1.0
            primary: true
            ports: ["3301:8080"]
            environment:
              LOG_LEVEL: debug
            volumes:
              - /var/lib/query
        dependencies:
          - name: clickhouse
  loop-a:
    versions:
      "1":
        image: loop/a:1
        port: 80
        dependencies:
          - name: loop-b
  loop-b:
    versions:
      "1":
        image: loop/b:1
        port: 80
        dependencies:
          - name: loop-a
  narcissus:
    versions:
      "1":
        image: narcissus:1
        port: 80
        dependencies:
          - name: narcissus
"""


class FakeContainer:
    def __init__(self, container_id, config):
        self.id = container_id
        self.name = config.name
        self.config = config
        self.running = False
        self.dead = False
        self.oom_killed = False
        self.exit_code = 0


class FakeRuntime(ContainerRuntime):
    """
    In-memory runtime. Every primitive is appended to `calls` as (operation, name).
    """

    def __init__(self):
        self.calls = []
        self.images = set()
        self.containers = {}
        self.networks = {}
        self.volumes = set()
        self.failures = {}
        self.exit_codes = {}
        self.log_output = {}
        self._counter = 0

    def fail(self, operation, name, exc=None):
        """Makes the next `operation` on `name` (container name, image or volume) raise."""
        self.failures[(operation, name)] = exc or ContainerRuntimeError(f"{operation} {name} failed")

    def _record(self, operation, name):
        self.calls.append((operation, name))
        if (operation, name) in self.failures:
            raise self.failures.pop((operation, name))

    def _get(self, ref):
        if ref in self.containers:
            return self.containers[ref]
        for container in self.containers.values():
            if container.name == ref:
                return container
        raise ContainerNotFoundError(ref)

    def ops(self, operation):
        return [name for op, name in self.calls if op == operation]

    def by_name(self, name):
        return self._get(name)

    # Images

    def image_exists(self, image):
        return image in self.images

    def pull_image(self, image):
        self._record("pull", image)
        self.images.add(image)

    # Containers

    def create_container(self, config):
        self._record("create", config.name)
        if any(c.name == config.name for c in self.containers.values()):
            raise ContainerRuntimeError(f"Conflict: container name {config.name} in use")
        self._counter += 1
        container_id = f"id{self._counter:04d}"
        self.containers[container_id] = FakeContainer(container_id, config)
        for mount in config.mounts:
            if mount.type == "volume":
                self.volumes.add(mount.source)
        return container_id

    def start_container(self, ref):
        container = self._get(ref)
        self._record("start", container.name)
        container.running = True

    def stop_container(self, ref, timeout=10):
        container = self._get(ref)
        self._record("stop", container.name)
        container.running = False

    def restart_container(self, ref, timeout=10):
        container = self._get(ref)
        self._record("restart", container.name)
        container.running = True

    def remove_container(self, ref, force=False):
        container = self._get(ref)
        self._record("remove", container.name)
        if container.running and not force:
            raise ContainerRuntimeError(f"Container {container.name} is running")
        del self.containers[container.id]

    def inspect_container(self, ref):
        container = self._get(ref)
        return ContainerState(
            id=container.id,
            name=container.name,
            status="running" if container.running else ("dead" if container.dead else "exited"),
            running=container.running,
            dead=container.dead,
            oom_killed=container.oom_killed,
            exit_code=container.exit_code,
            image=container.config.image,
            labels=dict(container.config.labels),
            volumes=[m.source for m in container.config.mounts if m.type == "volume"],
        )

    def list_containers(self, labels=None):
        states = []
        for container in self.containers.values():
            if all(container.config.labels.get(k) == v for k, v in (labels or {}).items()):
                states.append(self.inspect_container(container.id))
        return states

    # Networks

    def ensure_network(self, name, subnet=None, gateway=None):
        self.networks.setdefault(name, {})

    def connect_network(self, network, ref, aliases=None):
        container = self._get(ref)
        self._record("connect", container.name)
        self.networks.setdefault(network, {})[container.name] = list(aliases or [])

    def disconnect_network(self, network, ref, force=True):
        container = self._get(ref)
        self._record("disconnect", container.name)
        self.networks.get(network, {}).pop(container.name, None)

    # Volumes

    def list_volumes(self, prefix=""):
        return sorted(v for v in self.volumes if v.startswith(prefix))

    def remove_volume(self, name, force=False):
        self._record("remove_volume", name)
        if name not in self.volumes:
            raise ContainerRuntimeError(f"No such volume {name}")
        self.volumes.discard(name)

    # Run to completion

    def wait_container(self, ref, timeout=None):
        container = self._get(ref)
        self._record("wait", container.name)
        container.running = False
        container.exit_code = self.exit_codes.get(container.name, 0)
        return container.exit_code

    def container_logs(self, ref, tail=None):
        container = self._get(ref)
        return self.log_output.get(container.name, "")


@pytest.fixture
def runtime():
    return FakeRuntime()


@pytest.fixture
def store(tmp_path):
    config_store = ConfigStore(tmp_path / "home")
    config_store.initialize()

    def no_delays(config):
        config.orchestration.install_settle_delay = 0
        config.orchestration.start_settle_delay = 0
        config.orchestration.create_pause = 0

    config_store.update(no_delays)
    return config_store


@pytest.fixture
def catalog(tmp_path):
    return CatalogParser().parse_from_string(CATALOG_YAML, base_dir=str(tmp_path))


@pytest.fixture
def dns(tmp_path):
    return DNSManager(hosts_path=str(tmp_path / "hosts"))


@pytest.fixture
def manager(runtime, store, catalog, dns):
    return ServiceManager(runtime, store, catalog, dns=dns)


@pytest.fixture
def installer(runtime, store, catalog, dns, manager):
    return Installer(runtime, store, catalog, dns=dns, lifecycle=manager)
