"""
Options accepted by the installer and the decision callbacks it consults.
"""
from enum import Enum
from typing import Callable, Dict, List, Optional
from pydantic import BaseModel


class DataDecision(str, Enum):
    """
    What to do with volumes and env files left behind by an earlier install.
    """
    REUSE = "reuse"
    DELETE = "delete"
    CANCEL = "cancel"


class ExistingData(BaseModel):
    """
    Leftover state found for an instance name that is about to be installed.
    """
    instance_name: str
    volumes: List[str] = []
    env_files: List[str] = []

    @property
    def has_data(self) -> bool:
        return bool(self.volumes or self.env_files)


class InstallOptions(BaseModel):
    """
    Everything that shapes a single installation.

    `confirm_replace` is asked before an existing instance is torn down;
    `decide_existing_data` picks a DataDecision when leftover data is found.
    An omitted `instance_name` defaults to `service-version`.
    Without callbacks, replacing is refused unless `replace` is set and
    leftover data is reused.
    """
    service_name: str
    version: str = ""
    instance_name: str = ""
    unique_name: bool = False  # pick service-version-N instead of failing on a taken name

    environment: Dict[str, str] = {}
    memory_limit: Optional[str] = None
    cpu_limit: Optional[str] = None
    volumes: Dict[str, str] = {}  # {host: container}
    port_mappings: Dict[str, str] = {}  # {container: host}

    internal: bool = False
    skip_dependencies: bool = False
    auto_install_deps: bool = True
    is_dependency: bool = False

    replace: bool = False
    reuse_existing_data: bool = False
    force_clean_data: bool = False

    confirm_replace: Optional[Callable[[str], bool]] = None
    decide_existing_data: Optional[Callable[[ExistingData], DataDecision]] = None
