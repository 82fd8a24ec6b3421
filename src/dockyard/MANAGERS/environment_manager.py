"""
Managers for instance environment variables and their stored .env files.
"""
import logging
import os
from typing import Dict, List, Optional

from ..PARSERS.env_parser import EnvParser
from ..UTILS.naming import env_file_name

logger = logging.getLogger(__name__)


def merge_environment(*layers: Optional[Dict[str, str]]) -> Dict[str, str]:
    """
    Merges environment layers from lowest to highest precedence; later layers win.
    """
    merged = {}
    for layer in layers:
        if layer:
            merged.update(layer)
    return merged


class EnvironmentManager:
    """
    Manages the stored .env files of instances and the merging of environment layers.
    """
    def __init__(self, services_dir: str):
        """
        Initializes the environment manager.

        :param services_dir: Directory holding `<instance>.env` and `<instance>-<container>.env` files.
        """
        self.services_dir = str(services_dir)
        self.parser = EnvParser()

    def env_file_path(self, instance_name: str, container: Optional[str] = None) -> str:
        return os.path.join(self.services_dir, env_file_name(instance_name, container))

    def load(self, instance_name: str, container: Optional[str] = None) -> Dict[str, str]:
        """
        Returns the stored environment of an instance, or an empty dict when no file exists.
        """
        path = self.env_file_path(instance_name, container)
        if not os.path.exists(path):
            return {}
        return self.parser.parse(path)

    def save(self, instance_name: str, env: Dict[str, str], container: Optional[str] = None) -> str:
        path = self.env_file_path(instance_name, container)
        self.parser.write(path, env)
        logger.debug(f"Saved environment for {instance_name} to {path}")
        return path

    def find_env_files(self, instance_name: str, containers: Optional[List[str]] = None) -> List[str]:
        """
        Lists existing env files of an instance: `<instance>.env` plus
        `<instance>-<container>.env` for each of the given containers.
        """
        candidates = [self.env_file_path(instance_name)]
        for container in containers or []:
            candidates.append(self.env_file_path(instance_name, container))
        return [path for path in candidates if os.path.exists(path)]

    def delete_env_files(self,
                         instance_name: str,
                         containers: Optional[List[str]] = None,
                         paths: Optional[List[str]] = None) -> List[str]:
        """
        Removes env files of an instance. Failures are logged and skipped.

        :return: Paths that were removed.
        """
        removed = []
        for path in paths if paths is not None else self.find_env_files(instance_name, containers):
            try:
                os.remove(path)
                removed.append(path)
            except OSError as e:
                logger.warning(f"Could not delete env file {path}: {e}")
        return removed
