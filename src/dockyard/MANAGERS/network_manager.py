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
Shared network management: every managed container joins one bridge network
and is discoverable there through its aliases.
"""
import logging
from typing import Dict, List, Optional

from ..errors import ContainerRuntimeError
from ..MODELS.settings import NetworkSettings
from ..RUNNERS.container_runtime import ContainerRuntime

logger = logging.getLogger(__name__)


class NetworkManager:
    """
    Attaches and detaches containers on the shared network.
    """

    def __init__(self, runtime: ContainerRuntime, settings: Optional[NetworkSettings] = None):
        self.runtime = runtime
        self.settings = settings or NetworkSettings()
        self._ready = False

    @property
    def name(self) -> str:
        return self.settings.name

    def ensure_network(self):
        """Creates the shared network on first use."""
        if self._ready:
            return
        self.runtime.ensure_network(self.settings.name, self.settings.subnet, self.settings.gateway)
        self._ready = True

    def connect(self, container_ref: str, aliases: List[str]):
        self.ensure_network()
        logger.debug(f"Connecting {container_ref} to {self.name} as {', '.join(aliases)}")
        self.runtime.connect_network(self.name, container_ref, aliases)

    def disconnect(self, container_ref: str, best_effort: bool = False) -> bool:
        """
        Detaches a container from the shared network.

        :param best_effort: Log failures instead of raising them.
        :return: True if the container was detached.
        """
        try:
            self.runtime.disconnect_network(self.name, container_ref, force=True)
            return True
        except ContainerRuntimeError as e:
            if not best_effort:
                raise
            logger.warning(f"Could not disconnect {container_ref} from {self.name}: {e}")
            return False

    @staticmethod
    def parse_port_mappings(mappings: List[str]) -> Dict[str, str]:
        """
        Parses "host:container" strings (or a bare port, published on the same host port).

        :return: {container_port: host_port}
        :raises ValueError: On a malformed mapping.
        """
        parsed = {}
        for mapping in mappings:
            parts = str(mapping).split(":")
            if len(parts) == 1:
                host, container = parts[0], parts[0]
            elif len(parts) == 2:
                host, container = parts
            else:
                raise ValueError(f"invalid port mapping: {mapping}")
            container = container.split("/")[0]
            if not host.isdigit() or not container.isdigit():
                raise ValueError(f"invalid port mapping: {mapping}")
            parsed[container] = host
        return parsed

    @staticmethod
    def first_container_port(mappings: List[str]) -> int:
        """Container side of the first "host:container" mapping, or 0."""
        if not mappings:
            return 0
        container = str(mappings[0]).split(":")[-1].split("/")[0]
        return int(container) if container.isdigit() else 0
