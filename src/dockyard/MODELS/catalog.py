"""
Models for the service catalog: services, their versions and the container specs behind them.
"""
import re
from typing import List, Dict, Optional
from pydantic import BaseModel

from ..errors import ValidationError, ServiceNotFoundError, VersionNotFoundError


class Healthcheck(BaseModel):
    """
    Command the runtime runs to decide whether a container is healthy.
    """
    test: List[str] = []
    interval: Optional[str] = None
    timeout: Optional[str] = None
    retries: int = 0
    start_period: Optional[str] = None


class ResourceRequirements(BaseModel):
    """
    Default resource envelope of a service or container, e.g. memory_max "1g", cpu_max "1.0".
    """
    memory_min: Optional[str] = None
    memory_max: Optional[str] = None
    cpu_min: Optional[str] = None
    cpu_max: Optional[str] = None


class DependencySpec(BaseModel):
    """
    Another catalog service this one needs, with environment overrides applied to it.
    """
    name: str
    version: str = "latest"
    required: bool = True
    environment: Dict[str, str] = {}


class InitContainer(BaseModel):
    """
    A container that runs to completion once, before the service containers start.
    """
    name: str
    image: str
    command: List[str] = []
    environment: Dict[str, str] = {}
    depends_on: List[str] = []


class ContainerSpec(BaseModel):
    """
    One container of a multi-container service.
    """
    name: str = ""
    image: str = ""
    primary: bool = False
    ports: List[str] = []
    environment: Dict[str, str] = {}
    volumes: List[str] = []
    depends_on: List[str] = []
    healthcheck: Optional[Healthcheck] = None
    resources: Optional[ResourceRequirements] = None
    command: List[str] = []
    entrypoint: List[str] = []


class ServiceSpec(BaseModel):
    """
    The definition of one version of a service. Either `image` (single container)
    or `containers` (multi-container) is set, never both.
    """
    image: str = ""
    description: str = ""
    port: int = 0
    admin_port: int = 0
    protocol: str = "http"
    ports: List[str] = []
    environment: Dict[str, str] = {}
    volumes: List[str] = []
    command: List[str] = []
    healthcheck: Optional[Healthcheck] = None
    resources: Optional[ResourceRequirements] = None

    containers: List[ContainerSpec] = []
    init_containers: List[InitContainer] = []

    dependencies: List[DependencySpec] = []

    @property
    def is_multi_container(self) -> bool:
        return len(self.containers) > 0

    def primary_container(self) -> Optional[ContainerSpec]:
        """
        Returns the container marked primary, the first container if none is marked,
        or None for single-container specs.
        """
        if not self.is_multi_container:
            return None
        for container in self.containers:
            if container.primary:
                return container
        return self.containers[0]

    def get_container(self, name: str) -> Optional[ContainerSpec]:
        for container in self.containers:
            if container.name == name:
                return container
        return None

    def dependency_names(self) -> List[str]:
        return [dep.name for dep in self.dependencies]

    def validate_spec(self):
        """
        Checks the structural rules of the spec.

        :raises ValidationError: On the first rule that is violated.
        """
        if not self.image and not self.containers:
            raise ValidationError("image/containers", "service must have either 'image' or 'containers' defined")
        if self.image and self.containers:
            raise ValidationError("image/containers", "service cannot have both 'image' and 'containers' defined")

        init_names = set()
        for idx, init in enumerate(self.init_containers):
            if not init.name or not init.image:
                raise ValidationError(f"init_containers[{idx}]", "init container needs a name and an image")
            if not init.command:
                raise ValidationError(f"init_containers[{idx}].command", f"init container {init.name} has no command")
            if init.name in init_names:
                raise ValidationError(f"init_containers[{idx}].name", f"duplicate init container name '{init.name}'")
            init_names.add(init.name)

        if self.image:
            if self.port <= 0:
                raise ValidationError("port", "port must be greater than 0")
            return

        names = set()
        primary_count = 0
        for idx, container in enumerate(self.containers):
            if not container.name:
                raise ValidationError(f"containers[{idx}].name", "container name is required")
            if not container.image:
                raise ValidationError(f"containers[{idx}].image", "container image is required")
            if container.name in names:
                raise ValidationError(f"containers[{idx}].name", f"duplicate container name '{container.name}'")
            names.add(container.name)
            if container.primary:
                primary_count += 1

        if primary_count > 1:
            raise ValidationError("containers", "only one container can be marked as primary")
        if self.port <= 0:
            raise ValidationError("port", "multi-container service must have a main port defined")


def _version_key(version: str) -> List:
    parts = []
    for segment in version.lstrip("vV").split("."):
        match = re.match(r"^(\d+)(.*)$", segment)
        if match:
            parts.append((0, int(match.group(1)), match.group(2)))
        else:
            parts.append((1, 0, segment))
    return parts


def compare_versions(a: str, b: str) -> int:
    """
    Compares two version strings segment by segment.
    A leading "v" is ignored, numeric segments compare as numbers.

    :return: -1 if a < b, 0 if equal, 1 if a > b.
    """
    key_a, key_b = _version_key(a), _version_key(b)
    if key_a == key_b:
        return 0
    return 1 if key_a > key_b else -1


class CatalogService(BaseModel):
    """
    A service in the catalog and all of its published versions.
    """
    name: str
    description: str = ""
    category: str = ""
    icon: str = ""
    tags: List[str] = []
    latest_version: Optional[str] = None
    versions: Dict[str, ServiceSpec] = {}

    def resolve_version(self, version: Optional[str]) -> str:
        """
        Maps a requested version onto a key of `versions`.

        "" and "latest" resolve to the declared latest version, or to the highest
        version present. Anything else must match a key exactly.

        :raises VersionNotFoundError: If nothing matches.
        """
        if version and version != "latest":
            if version in self.versions:
                return version
            raise VersionNotFoundError(self.name, version)

        if "latest" in self.versions:
            return "latest"
        if self.latest_version and self.latest_version in self.versions:
            return self.latest_version
        if not self.versions:
            raise VersionNotFoundError(self.name, version or "latest")

        best = None
        for candidate in self.versions:
            if best is None or compare_versions(candidate, best) > 0:
                best = candidate
        return best

    def get_spec(self, version: Optional[str]) -> ServiceSpec:
        return self.versions[self.resolve_version(version)]


class ServiceCatalog(BaseModel):
    """
    The full catalog, keyed by service name.
    """
    version: str = "1"
    services: Dict[str, CatalogService] = {}

    def get_service(self, name: str) -> CatalogService:
        if name not in self.services:
            raise ServiceNotFoundError(name)
        return self.services[name]

    def has_service(self, name: str) -> bool:
        return name in self.services

    def get_spec(self, name: str, version: Optional[str]) -> ServiceSpec:
        return self.get_service(name).get_spec(version)

    def list_services(self) -> List[CatalogService]:
        return [self.services[name] for name in sorted(self.services)]
