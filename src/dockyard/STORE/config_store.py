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
Persistent configuration and instance table, stored as YAML under the dockyard home.
"""
import logging
import os
import threading
from pathlib import Path
from typing import Callable, List, Optional, Union

import yaml

from ..errors import DockyardError, InstanceExistsError, InstanceNotFoundError
from ..MODELS.instance import Instance
from ..MODELS.settings import Config, Preferences

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.yaml"
SERVICES_DIR = "services"


def default_home() -> Path:
    """Home directory from $DOCKYARD_HOME, falling back to ~/.dockyard."""
    return Path(os.environ.get("DOCKYARD_HOME", Path.home() / ".dockyard"))


class ConfigStore:
    """
    Loads and saves the configuration file.

    Every mutation goes through `update`, which loads, applies the change and
    writes the result atomically while holding the store lock, so concurrent
    writers never lose each other's changes.
    """

    def __init__(self, home: Optional[Union[str, Path]] = None):
        self.home = Path(home) if home else default_home()
        self.path = self.home / CONFIG_FILE
        self.services_dir = self.home / SERVICES_DIR
        self._lock = threading.RLock()

    def initialize(self) -> Config:
        """
        Creates the home layout and a default config file when missing.
        """
        with self._lock:
            self.home.mkdir(parents=True, exist_ok=True)
            self.services_dir.mkdir(parents=True, exist_ok=True)
            if not self.path.exists():
                self.save(Config())
            return self.load()

    def load(self) -> Config:
        with self._lock:
            if not self.path.exists():
                return Config()
            try:
                with open(self.path, 'r') as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise DockyardError(f"Corrupt config file {self.path}: {e}")
            return Config.model_validate(data)

    def save(self, config: Config):
        """
        Writes the config to a temporary file and renames it over the old one.
        """
        with self._lock:
            self.home.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(".yaml.tmp")
            data = config.model_dump(mode="json")
            with open(tmp_path, 'w') as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
            os.replace(tmp_path, self.path)

    def update(self, fn: Callable[[Config], None]) -> Config:
        """
        Atomic read-modify-write. Nothing is saved if `fn` raises.
        """
        with self._lock:
            config = self.load()
            fn(config)
            self.save(config)
            return config

    # Settings

    def get_preferences(self) -> Preferences:
        return self.load().preferences

    def update_preferences(self, **values) -> Preferences:
        """
        Sets preference fields, e.g. update_preferences(dns_setup="hosts").

        :raises DockyardError: On an unknown preference name.
        """
        def apply(config):
            for key, value in values.items():
                if key not in Preferences.model_fields:
                    raise DockyardError(f"Unknown preference '{key}'")
                setattr(config.preferences, key, value)

        return self.update(apply).preferences

    # Instances

    def get_instance(self, name: str) -> Instance:
        config = self.load()
        if name not in config.instances:
            raise InstanceNotFoundError(name)
        return config.instances[name]

    def has_instance(self, name: str) -> bool:
        return name in self.load().instances

    def list_instances(self) -> List[Instance]:
        config = self.load()
        return [config.instances[name] for name in sorted(config.instances)]

    def add_instance(self, instance: Instance):
        def add(config):
            if instance.name in config.instances:
                raise InstanceExistsError(instance.name)
            config.instances[instance.name] = instance

        self.update(add)
        logger.debug(f"Stored instance {instance.name}")

    def update_instance(self, name: str, mutator: Callable[[Instance], None]) -> Instance:
        """
        Applies `mutator` to the stored record of `name` and saves it.

        :raises InstanceNotFoundError: If the instance does not exist.
        """
        result = {}

        def apply(config):
            if name not in config.instances:
                raise InstanceNotFoundError(name)
            instance = config.instances[name]
            mutator(instance)
            instance.touch()
            result["instance"] = instance

        self.update(apply)
        return result["instance"]

    def remove_instance(self, name: str):
        def remove(config):
            if name not in config.instances:
                raise InstanceNotFoundError(name)
            del config.instances[name]

        self.update(remove)
        logger.debug(f"Removed instance {name} from config")
