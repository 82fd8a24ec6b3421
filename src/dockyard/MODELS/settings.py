"""
Persisted configuration: user preferences, network settings and the instance table.
"""
from typing import Dict
from pydantic import BaseModel, Field

from .instance import Instance

DEFAULT_PREFIX = "dockyard"


class Preferences(BaseModel):
    """
    How instances are exposed to the user.

    dns_setup is "hosts" to maintain /etc/hosts entries, anything else to skip it.
    """
    domain: str = "dockyard.local"
    protocol: str = "https"
    dns_setup: str = "none"


class NetworkSettings(BaseModel):
    name: str = f"{DEFAULT_PREFIX}-network"
    subnet: str = "172.28.0.0/16"
    gateway: str = "172.28.0.1"


class OrchestrationSettings(BaseModel):
    """
    Timings and naming used by the installer and lifecycle manager. Delays are in seconds.
    """
    prefix: str = DEFAULT_PREFIX
    stop_timeout: int = 10
    init_container_timeout: int = 300
    install_settle_delay: float = 2.0
    start_settle_delay: float = 1.0
    create_pause: float = 0.5
    max_name_attempts: int = 100


class Config(BaseModel):
    version: str = "1"
    preferences: Preferences = Field(default_factory=Preferences)
    network: NetworkSettings = Field(default_factory=NetworkSettings)
    orchestration: OrchestrationSettings = Field(default_factory=OrchestrationSettings)
    instances: Dict[str, Instance] = {}
