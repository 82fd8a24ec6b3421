"""
Naming conventions for managed containers, volumes, env files and network aliases.

All runtime names derive from these functions so they stay identical wherever they are computed.
"""
import re
import time
from typing import Callable, List, Optional

from ..MODELS.settings import DEFAULT_PREFIX


def container_name(instance_name: str, prefix: str = DEFAULT_PREFIX) -> str:
    return f"{prefix}-{instance_name}"


def multi_container_name(instance_name: str, container: str, prefix: str = DEFAULT_PREFIX) -> str:
    return f"{prefix}-{instance_name}-{container}"


def init_container_name(instance_name: str, init_name: str, prefix: str = DEFAULT_PREFIX) -> str:
    return f"{prefix}-{instance_name}-init-{init_name}"


def volume_name(instance_name: str, tag: str = "", prefix: str = DEFAULT_PREFIX) -> str:
    if not tag:
        return f"{prefix}-{instance_name}-data"
    return f"{prefix}-{instance_name}-{tag}"


def volume_prefix(instance_name: str, prefix: str = DEFAULT_PREFIX) -> str:
    """Prefix shared by every volume owned by an instance."""
    return f"{prefix}-{instance_name}-"


def volume_tag(mount_path: str, index: int, container: Optional[str] = None) -> str:
    """
    Turns a mount path into a volume tag that is valid as a docker volume name.

    /var/lib/postgresql/data at index 0 gives "var-lib-postgresql-data-0". Volumes of a
    multi-container service are tagged by container name and index only.
    """
    if container:
        return f"{container}-{index}"
    slug = re.sub(r"[^a-zA-Z0-9_.-]+", "-", mount_path).strip("-") or "data"
    return f"{slug}-{index}"


def default_instance_name(service_name: str, version: str) -> str:
    if not version or version == "latest":
        return service_name
    return f"{service_name}-{version.replace('.', '-')}"


def generate_instance_name(service_name: str,
                           version: str,
                           is_taken: Callable[[str], bool],
                           max_attempts: int = 100) -> str:
    """
    Picks the first free name among `service-version`, `service-version-2` ...
    `service-version-<max_attempts>`, then falls back to a timestamp suffix.

    :param is_taken: Returns True when an instance with that name already exists.
    """
    base = default_instance_name(service_name, version)
    if not is_taken(base):
        return base

    for num in range(2, max_attempts + 1):
        candidate = f"{base}-{num}"
        if not is_taken(candidate):
            return candidate

    return f"{base}-{int(time.time())}"


def single_container_aliases(service_name: str, instance_name: str) -> List[str]:
    aliases = [service_name]
    if instance_name != service_name:
        aliases.append(instance_name)
    return aliases


def multi_container_aliases(instance_name: str,
                            service_name: str,
                            container: str,
                            primary: bool,
                            prefix: str = DEFAULT_PREFIX) -> List[str]:
    """
    Network aliases of one container in a multi-container instance.

    Every container is reachable as `<prefix>-<instance>-<container>`,
    `<service>-<container>` and `<container>`; the primary also answers to the
    instance name and the service name.
    """
    aliases = [
        multi_container_name(instance_name, container, prefix),
        f"{service_name}-{container}",
        container,
    ]
    if primary:
        aliases.append(instance_name)
        aliases.append(service_name)

    unique = []
    for alias in aliases:
        if alias not in unique:
            unique.append(alias)
    return unique


def env_file_name(instance_name: str, container: Optional[str] = None) -> str:
    if container:
        return f"{instance_name}-{container}.env"
    return f"{instance_name}.env"
