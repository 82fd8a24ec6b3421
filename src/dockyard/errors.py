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
Exception hierarchy shared by the catalog, resolver, installer and lifecycle manager.
"""
from typing import List, Optional


class DockyardError(Exception):
    """Base class for every error raised by dockyard."""


class ValidationError(DockyardError):
    """
    A catalog spec is malformed. Raised before any runtime call is made.
    """

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class CycleError(DockyardError):
    """Base class for ordering cycles."""


class CircularDependencyError(CycleError):
    """
    A service depends on itself, directly or through other services.

    :param service: The service at which the cycle was detected.
    :param chain: The walk from the root service up to and including the repeated node.
    """

    def __init__(self, service: str, chain: Optional[List[str]] = None):
        self.service = service
        self.chain = list(chain or [])
        path = " -> ".join(self.chain) if self.chain else service
        super().__init__(f"Circular dependency detected involving {service}: {path}")


class ContainerStartupCycleError(CycleError):
    """Containers of a multi-container service depend on each other in a loop."""

    def __init__(self, containers: List[str]):
        self.containers = list(containers)
        super().__init__(
            f"Circular dependency in container startup order: {', '.join(self.containers)}"
        )


class InitContainerCycleError(CycleError):
    """Init containers depend on each other in a loop."""

    def __init__(self, containers: List[str]):
        self.containers = list(containers)
        super().__init__(
            f"Circular dependency between init containers: {', '.join(self.containers)}"
        )


class ContainerRuntimeError(DockyardError):
    """The container runtime failed to pull, create, start, stop or inspect something."""


class ContainerNotFoundError(ContainerRuntimeError):
    def __init__(self, ref: str):
        self.ref = ref
        super().__init__(f"Container {ref} not found")


class InitContainerError(ContainerRuntimeError):
    """An init container exited with a non-zero status."""

    def __init__(self, name: str, exit_code: int, logs: str = ""):
        self.name = name
        self.exit_code = exit_code
        self.logs = logs
        message = f"Init container {name} failed with exit code {exit_code}"
        if logs:
            message += f"\n{logs}"
        super().__init__(message)


class DataConflictError(DockyardError):
    """An instance or its leftover data already exists."""


class InstanceExistsError(DataConflictError):
    def __init__(self, instance: str):
        self.instance = instance
        super().__init__(
            f"Instance '{instance}' already exists. Use --replace to reinstall it."
        )


class InstallationCancelled(Exception):
    """
    The user chose to abort. Not a failure, so it does not derive from DockyardError.
    """


class ServiceNotFoundError(DockyardError):
    def __init__(self, service: str):
        self.service = service
        super().__init__(f"Service '{service}' not found in catalog")


class VersionNotFoundError(DockyardError):
    def __init__(self, service: str, version: str):
        self.service = service
        self.version = version
        super().__init__(f"Version '{version}' not found for service '{service}'")


class InstanceNotFoundError(DockyardError):
    def __init__(self, instance: str):
        self.instance = instance
        super().__init__(f"Instance '{instance}' not found")


class AlreadyRunningError(DockyardError):
    def __init__(self, instance: str):
        self.instance = instance
        super().__init__(f"Instance '{instance}' is already running")


class AlreadyStoppedError(DockyardError):
    def __init__(self, instance: str):
        self.instance = instance
        super().__init__(f"Instance '{instance}' is already stopped")
