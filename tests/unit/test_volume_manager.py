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
Unit tests for the volume manager.
"""
import os
import pytest
from dockyard.MANAGERS.volume_manager import VolumeManager


class TestVolumeManager:
    """Tests for VolumeManager."""

    def test_named_volume_mount(self, runtime):
        """A bare path becomes a managed named volume."""
        vm = VolumeManager(runtime)
        mounts = vm.build_mounts("pg", ["/var/lib/postgresql/data"])
        assert len(mounts) == 1
        assert mounts[0].source == "dockyard-pg-var-lib-postgresql-data-0"
        assert mounts[0].target == "/var/lib/postgresql/data"
        assert mounts[0].type == "volume"

    def test_container_volume_mount(self, runtime):
        vm = VolumeManager(runtime)
        mounts = vm.build_mounts("tracing", ["/a", "/b"], container="query")
        assert [m.source for m in mounts] == ["dockyard-tracing-query-0", "dockyard-tracing-query-1"]

    def test_bind_mount(self, runtime):
        vm = VolumeManager(runtime)
        mount = vm.build_mounts("proxy", ["/srv/traefik.yml:/etc/traefik/traefik.yml:ro"])[0]
        assert mount.type == "bind"
        assert mount.source == "/srv/traefik.yml"
        assert mount.read_only is True

    def test_user_volumes(self, runtime):
        vm = VolumeManager(runtime)
        mounts = vm.build_mounts("pg", [], user_volumes={"./backups": "/backups"})
        assert mounts[0].type == "bind"
        assert os.path.isabs(mounts[0].source)
        assert mounts[0].target == "/backups"

    def test_resolve_source_relative_path(self, runtime):
        path = VolumeManager(runtime).resolve_source("./data")
        assert path.endswith("data")
        assert os.path.isabs(path)

    def test_find_instance_volumes(self, runtime):
        runtime.volumes.update({
            "dockyard-pg-data-0",
            "dockyard-pg-2-data-0",
            "dockyard-pgadmin-data-0",
            "other-pg-data",
        })
        vm = VolumeManager(runtime)
        assert vm.find_instance_volumes("pg", ["pg", "pg-2"]) == ["dockyard-pg-data-0"]

    def test_remove_volumes_managed_only(self, runtime):
        runtime.volumes.update({"dockyard-pg-data-0", "shared-data"})
        vm = VolumeManager(runtime)
        removed = vm.remove_volumes(["dockyard-pg-data-0", "shared-data"])
        assert removed == ["dockyard-pg-data-0"]
        assert "shared-data" in runtime.volumes

    def test_remove_volume_failure_is_warning(self, runtime):
        vm = VolumeManager(runtime)
        assert vm.remove_volumes(["dockyard-gone-data-0"]) == []
