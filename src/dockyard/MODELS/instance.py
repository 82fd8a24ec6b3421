"""
Models for installed service instances and the containers that back them.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import List, Dict, Optional
from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InstanceStatus(str, Enum):
    """
    Lifecycle status of an instance or of one of its containers.
    """
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"
    UNKNOWN = "unknown"


class ContainerStatus(str, Enum):
    """
    Status recorded per container of a multi-container instance.
    """
    CREATED = "created"
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"


class ContainerInfo(BaseModel):
    """
    One container belonging to a multi-container instance.

    `name` is the short name from the spec, `full_name` the runtime name.
    """
    name: str
    id: str = ""
    full_name: str
    primary: bool = False
    status: str = ContainerStatus.CREATED.value
    ports: List[str] = []
    image: str = ""


class NetworkConfig(BaseModel):
    name: str = ""
    aliases: List[str] = []
    port_mappings: Dict[str, str] = {}


class ResourceConfig(BaseModel):
    memory_limit: Optional[str] = None
    cpu_limit: Optional[str] = None


class ProxyConfig(BaseModel):
    enabled: bool = False
    router: str = ""
    host: str = ""
    port: int = 0
    tls: bool = False


class Instance(BaseModel):
    """
    The persisted record of an installed service.

    Single-container instances use `container_name` / `container_id`; multi-container
    instances carry an ordered `containers` list in creation order.
    """
    name: str
    service_type: str
    version: str
    status: InstanceStatus = InstanceStatus.UNKNOWN

    container_name: str = ""
    container_id: str = ""

    is_multi_container: bool = False
    containers: List[ContainerInfo] = []

    dependencies: List[str] = []
    is_dependency: bool = False
    internal: bool = False

    url: str = ""
    connection_string: str = ""
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    resources: ResourceConfig = Field(default_factory=ResourceConfig)
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)
    volumes: Dict[str, str] = {}
    environment: Dict[str, str] = {}

    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    def touch(self):
        self.updated_at = _now()

    def primary_container(self) -> Optional[ContainerInfo]:
        for container in self.containers:
            if container.primary:
                return container
        return self.containers[0] if self.containers else None

    def get_container(self, name: str) -> Optional[ContainerInfo]:
        for container in self.containers:
            if container.name == name:
                return container
        return None

    def main_container_name(self) -> str:
        """
        Runtime name of the container that represents the instance as a whole.
        """
        if self.is_multi_container:
            primary = self.primary_container()
            return primary.full_name if primary else ""
        return self.container_name
