"""
Volume management for instances: mount construction, leftover detection and cleanup.
"""
import logging
import os
from typing import Dict, Iterable, List, Optional

from ..errors import ContainerRuntimeError
from ..MODELS.settings import DEFAULT_PREFIX
from ..RUNNERS.container_runtime import ContainerRuntime, MountSpec
from ..UTILS.naming import volume_name, volume_prefix, volume_tag

logger = logging.getLogger(__name__)


class VolumeManager:
    """
    Builds mounts for managed containers and removes managed volumes.

    Only volumes named with the managed prefix are ever removed.
    """
    def __init__(self, runtime: ContainerRuntime, prefix: str = DEFAULT_PREFIX):
        """
        :param runtime: Container runtime used to list and remove volumes.
        :param prefix: Managed-resource prefix.
        """
        self.runtime = runtime
        self.prefix = prefix

    def build_mounts(self,
                     instance_name: str,
                     volumes: List[str],
                     container: Optional[str] = None,
                     user_volumes: Optional[Dict[str, str]] = None) -> List[MountSpec]:
        """
        Turns catalog volume entries into mounts.

        "source:target[:ro]" entries become bind mounts; a bare path becomes a named
        volume owned by the instance. `user_volumes` ({host: container}) are added as
        bind mounts.

        :param instance_name: Instance the named volumes belong to.
        :param volumes: Volume entries from the catalog spec.
        :param container: Container name for multi-container instances.
        :param user_volumes: Extra bind mounts requested by the user.
        :return: The mounts to attach.
        """
        mounts = []
        for idx, entry in enumerate(volumes):
            if ":" in entry:
                mounts.append(self.parse_bind(entry))
                continue
            tag = volume_tag(entry, idx, container)
            mounts.append(MountSpec(source=volume_name(instance_name, tag, self.prefix), target=entry))

        for host_path, container_path in (user_volumes or {}).items():
            mounts.append(MountSpec(source=self.resolve_source(host_path), target=container_path, type="bind"))
        return mounts

    @staticmethod
    def parse_bind(entry: str) -> MountSpec:
        parts = entry.split(":")
        read_only = len(parts) >= 3 and parts[2] == "ro"
        return MountSpec(source=parts[0], target=parts[1], type="bind", read_only=read_only)

    @staticmethod
    def resolve_source(source: str) -> str:
        """
        Resolves the host side of a bind mount to an absolute path.

        :param source: The source path.
        :return: The absolute path to the source.
        """
        return os.path.abspath(os.path.expanduser(source))

    def is_managed(self, name: str) -> bool:
        return name.startswith(f"{self.prefix}-")

    def find_instance_volumes(self, instance_name: str, other_instances: Iterable[str] = ()) -> List[str]:
        """
        Lists volumes carrying the instance's prefix.

        Volumes whose prefix belongs to a longer instance name that exists
        (pg-14-2 when looking for pg-14) are skipped.
        """
        names = self.runtime.list_volumes(volume_prefix(instance_name, self.prefix))
        shadowing = [
            volume_prefix(other, self.prefix) for other in other_instances
            if other != instance_name and other.startswith(f"{instance_name}-")
        ]
        return [name for name in names if not any(name.startswith(p) for p in shadowing)]

    def remove_volumes(self, names: Iterable[str]) -> List[str]:
        """
        Removes managed volumes. Failures are warnings; a volume may be in use
        by another instance.

        :return: Names that were removed.
        """
        removed = []
        for name in names:
            if not self.is_managed(name):
                logger.warning(f"Skipping volume {name}: not managed by {self.prefix}")
                continue
            try:
                self.runtime.remove_volume(name)
                removed.append(name)
                logger.info(f"Removed volume {name}")
            except ContainerRuntimeError as e:
                logger.warning(f"Could not remove volume {name}: {e}")
        return removed
