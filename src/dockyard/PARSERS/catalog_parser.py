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
Parsers for the service catalog.

Two layouts are understood:

* a single ``catalog.yaml`` with every service and version inline, and
* a directory tree ``services/<category>/<service>/service.yaml`` with one
  ``versions/<version>/config.yaml`` per version.

Bind-mount sources may use ``${CATALOG_DIR}``, which points at the directory
the version was defined in.
"""
import logging
import os
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError as PydanticValidationError

from ..errors import DockyardError, ValidationError
from ..MODELS.catalog import CatalogService, ServiceCatalog, ServiceSpec
from ..UTILS.string_interpolation import PlaceholderInterpolator

logger = logging.getLogger(__name__)

CATALOG_FILE = "catalog.yaml"
SERVICE_FILE = "service.yaml"
VERSION_FILE = "config.yaml"


class CatalogParser:
    """
    Parser for catalog files and directories.
    """
    def __init__(self, validate: bool = True):
        """
        :param validate: Run ServiceSpec.validate_spec on every version that is loaded.
        """
        self.validate = validate

    def parse(self, path: str) -> ServiceCatalog:
        """
        Parses a catalog from a file or directory.

        :param path: A catalog.yaml file, or a directory holding one or a services/ tree.
        :return: Parsed catalog.
        """
        if os.path.isfile(path):
            with open(path, 'r') as f:
                content = f.read()
            return self.parse_from_string(content, base_dir=os.path.dirname(os.path.abspath(path)))

        if not os.path.isdir(path):
            raise DockyardError(f"Catalog not found at {path}")

        services_root = os.path.join(path, "services")
        catalog_file = os.path.join(path, CATALOG_FILE)
        if os.path.isdir(services_root):
            return self._parse_tree(path)
        if os.path.isfile(catalog_file):
            return self.parse(catalog_file)
        raise DockyardError(f"No {CATALOG_FILE} or services/ directory in {path}")

    def parse_from_string(self, content: str, base_dir: str = ".") -> ServiceCatalog:
        """
        Parses a single-file catalog.

        :param content: YAML content.
        :param base_dir: Value of ${CATALOG_DIR} for bind mounts.
        :return: Parsed catalog.
        """
        data = yaml.safe_load(content) or {}
        services = {}
        for name, raw in (data.get("services") or {}).items():
            raw = dict(raw or {})
            versions = {}
            for version, spec in (raw.pop("versions", None) or {}).items():
                versions[str(version)] = self._parse_spec(name, str(version), spec or {}, base_dir)
            services[name] = self._build_service(name, raw, versions)

        return ServiceCatalog(version=str(data.get("version", "1")), services=services)

    def _parse_tree(self, root: str) -> ServiceCatalog:
        catalog_version = "1"
        catalog_file = os.path.join(root, CATALOG_FILE)
        if os.path.isfile(catalog_file):
            with open(catalog_file, 'r') as f:
                meta = yaml.safe_load(f) or {}
            catalog_version = str(meta.get("version", catalog_version))

        services = {}
        services_root = os.path.join(root, "services")
        for category in sorted(os.listdir(services_root)):
            category_dir = os.path.join(services_root, category)
            if not os.path.isdir(category_dir):
                continue
            for service_dir_name in sorted(os.listdir(category_dir)):
                service_dir = os.path.join(category_dir, service_dir_name)
                service_file = os.path.join(service_dir, SERVICE_FILE)
                if not os.path.isfile(service_file):
                    continue

                with open(service_file, 'r') as f:
                    raw = yaml.safe_load(f) or {}
                name = raw.pop("name", service_dir_name)
                raw.setdefault("category", category)
                versions = self._parse_versions_dir(name, os.path.join(service_dir, "versions"))
                services[name] = self._build_service(name, raw, versions)

        logger.debug(f"Loaded {len(services)} services from {root}")
        return ServiceCatalog(version=catalog_version, services=services)

    def _parse_versions_dir(self, name: str, versions_dir: str) -> Dict[str, ServiceSpec]:
        versions = {}
        if not os.path.isdir(versions_dir):
            return versions
        for version in sorted(os.listdir(versions_dir)):
            version_dir = os.path.join(versions_dir, version)
            version_file = os.path.join(version_dir, VERSION_FILE)
            if not os.path.isfile(version_file):
                continue
            with open(version_file, 'r') as f:
                spec = yaml.safe_load(f) or {}
            versions[version] = self._parse_spec(name, version, spec, version_dir)
        return versions

    def _build_service(self, name: str, raw: Dict[str, Any], versions: Dict[str, ServiceSpec]) -> CatalogService:
        latest = raw.get("latest_version")
        return CatalogService(
            name=name,
            description=raw.get("description", ""),
            category=raw.get("category", ""),
            icon=raw.get("icon", ""),
            tags=raw.get("tags") or [],
            latest_version=str(latest) if latest is not None else None,
            versions=versions,
        )

    def _parse_spec(self, name: str, version: str, raw: Dict[str, Any], catalog_dir: str) -> ServiceSpec:
        """
        Builds and validates one ServiceSpec, substituting ${CATALOG_DIR} in volumes.
        """
        context = {"CATALOG_DIR": os.path.abspath(catalog_dir)}
        raw = dict(raw)
        if raw.get("volumes"):
            raw["volumes"] = [PlaceholderInterpolator.interpolate(str(v), context) for v in raw["volumes"]]
        containers = []
        for container in raw.get("containers") or []:
            container = dict(container)
            if container.get("volumes"):
                container["volumes"] = [
                    PlaceholderInterpolator.interpolate(str(v), context) for v in container["volumes"]
                ]
            containers.append(container)
        if containers:
            raw["containers"] = containers

        try:
            spec = ServiceSpec.model_validate(raw)
        except PydanticValidationError as e:
            raise ValidationError(f"{name}@{version}", str(e))

        if self.validate:
            try:
                spec.validate_spec()
            except ValidationError as e:
                raise ValidationError(f"{name}@{version}.{e.field}", e.message)
        return spec
