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
Unit tests for the catalog models.
"""
import pytest
from dockyard.errors import ServiceNotFoundError, ValidationError, VersionNotFoundError
from dockyard.MODELS.catalog import (
    CatalogService,
    ContainerSpec,
    InitContainer,
    ServiceCatalog,
    ServiceSpec,
    compare_versions,
)


def _multi(**kwargs):
    containers = kwargs.pop("containers", [
        ContainerSpec(name="web", image="web:1"),
        ContainerSpec(name="worker", image="worker:1"),
    ])
    return ServiceSpec(containers=containers, port=kwargs.pop("port", 8080), **kwargs)


class TestServiceSpecValidation:
    """Tests for ServiceSpec.validate_spec."""

    def test_single_container_valid(self):
        """A spec with an image and a port is valid."""
        ServiceSpec(image="redis:7", port=6379).validate_spec()

    def test_needs_image_or_containers(self):
        with pytest.raises(ValidationError) as exc:
            ServiceSpec(port=80).validate_spec()
        assert exc.value.field == "image/containers"

    def test_image_and_containers_exclusive(self):
        spec = _multi(image="web:1")
        with pytest.raises(ValidationError, match="both"):
            spec.validate_spec()

    def test_single_container_needs_port(self):
        with pytest.raises(ValidationError) as exc:
            ServiceSpec(image="redis:7").validate_spec()
        assert exc.value.field == "port"

    def test_multi_container_needs_port(self):
        with pytest.raises(ValidationError, match="main port"):
            _multi(port=0).validate_spec()

    def test_duplicate_container_names(self):
        spec = _multi(containers=[ContainerSpec(name="a", image="a"), ContainerSpec(name="a", image="b")])
        with pytest.raises(ValidationError, match="duplicate container name"):
            spec.validate_spec()

    def test_container_needs_image(self):
        spec = _multi(containers=[ContainerSpec(name="a")])
        with pytest.raises(ValidationError) as exc:
            spec.validate_spec()
        assert exc.value.field == "containers[0].image"

    def test_only_one_primary(self):
        spec = _multi(containers=[
            ContainerSpec(name="a", image="a", primary=True),
            ContainerSpec(name="b", image="b", primary=True),
        ])
        with pytest.raises(ValidationError, match="only one container"):
            spec.validate_spec()

    def test_init_container_needs_command(self):
        spec = _multi(init_containers=[InitContainer(name="migrate", image="m:1")])
        with pytest.raises(ValidationError, match="no command"):
            spec.validate_spec()

    def test_duplicate_init_containers(self):
        spec = _multi(init_containers=[
            InitContainer(name="migrate", image="m:1", command=["up"]),
            InitContainer(name="migrate", image="m:1", command=["down"]),
        ])
        with pytest.raises(ValidationError, match="duplicate init container"):
            spec.validate_spec()


class TestServiceSpecHelpers:
    """Tests for the ServiceSpec helper methods."""

    def test_primary_defaults_to_first(self):
        spec = _multi()
        assert spec.is_multi_container
        assert spec.primary_container().name == "web"

    def test_primary_marked(self):
        spec = _multi(containers=[
            ContainerSpec(name="web", image="web:1"),
            ContainerSpec(name="api", image="api:1", primary=True),
        ])
        assert spec.primary_container().name == "api"

    def test_single_container_has_no_primary(self):
        spec = ServiceSpec(image="redis:7", port=6379)
        assert not spec.is_multi_container
        assert spec.primary_container() is None

    def test_get_container(self):
        spec = _multi()
        assert spec.get_container("worker").image == "worker:1"
        assert spec.get_container("missing") is None


class TestVersions:
    """Tests for version comparison and resolution."""

    def test_compare_versions(self):
        assert compare_versions("1.10", "1.9") == 1
        assert compare_versions("v2.0", "2.0") == 0
        assert compare_versions("15", "16") == -1

    def test_resolve_explicit(self):
        service = CatalogService(name="pg", versions={"15": ServiceSpec(image="pg:15", port=5432)})
        assert service.resolve_version("15") == "15"

    def test_resolve_unknown_version(self):
        service = CatalogService(name="pg", versions={"15": ServiceSpec(image="pg:15", port=5432)})
        with pytest.raises(VersionNotFoundError):
            service.resolve_version("9.6")

    def test_resolve_latest_uses_declared_latest(self):
        service = CatalogService(
            name="pg",
            latest_version="15",
            versions={"15": ServiceSpec(image="pg:15", port=1), "16": ServiceSpec(image="pg:16", port=1)},
        )
        assert service.resolve_version("latest") == "15"

    def test_resolve_latest_picks_highest(self):
        service = CatalogService(
            name="redis",
            versions={"6.2": ServiceSpec(image="r:6", port=1), "7.10": ServiceSpec(image="r:7", port=1),
                      "7.2": ServiceSpec(image="r:7", port=1)},
        )
        assert service.resolve_version("") == "7.10"


class TestServiceCatalog:
    """Tests for ServiceCatalog lookups."""

    def test_get_service_not_found(self):
        with pytest.raises(ServiceNotFoundError):
            ServiceCatalog().get_service("nope")

    def test_list_services_sorted(self, catalog):
        names = [s.name for s in catalog.list_services()]
        assert names == sorted(names)
        assert "tracing" in names
