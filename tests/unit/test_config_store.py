"""
Unit tests for the YAML config store.
"""
import pytest
from dockyard.errors import DockyardError, InstanceExistsError, InstanceNotFoundError
from dockyard.MODELS.instance import ContainerInfo, Instance, InstanceStatus
from dockyard.STORE.config_store import ConfigStore


class TestConfigStore:
    """Tests for ConfigStore."""

    def test_initialize_creates_layout(self, tmp_path):
        store = ConfigStore(tmp_path / "home")
        config = store.initialize()
        assert store.path.exists()
        assert store.services_dir.is_dir()
        assert config.preferences.domain == "dockyard.local"

    def test_home_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DOCKYARD_HOME", str(tmp_path / "elsewhere"))
        assert ConfigStore().home == tmp_path / "elsewhere"

    def test_instance_round_trip(self, store):
        instance = Instance(
            name="tracing",
            service_type="tracing",
            version="1.0",
            status=InstanceStatus.RUNNING,
            is_multi_container=True,
            containers=[ContainerInfo(name="query", id="abc", full_name="dockyard-tracing-query", primary=True)],
        )
        store.add_instance(instance)

        loaded = store.get_instance("tracing")
        assert loaded.status == InstanceStatus.RUNNING
        assert loaded.primary_container().full_name == "dockyard-tracing-query"
        assert loaded.created_at == instance.created_at

    def test_add_existing_instance(self, store):
        store.add_instance(Instance(name="pg", service_type="postgres", version="16"))
        with pytest.raises(InstanceExistsError):
            store.add_instance(Instance(name="pg", service_type="postgres", version="16"))

    def test_update_instance(self, store):
        store.add_instance(Instance(name="pg", service_type="postgres", version="16"))
        before = store.get_instance("pg").updated_at

        def stop(instance):
            instance.status = InstanceStatus.STOPPED

        store.update_instance("pg", stop)
        after = store.get_instance("pg")
        assert after.status == InstanceStatus.STOPPED
        assert after.updated_at >= before

    def test_update_missing_instance(self, store):
        with pytest.raises(InstanceNotFoundError):
            store.update_instance("ghost", lambda instance: None)

    def test_failed_update_saves_nothing(self, store):
        store.add_instance(Instance(name="pg", service_type="postgres", version="16"))

        def broken(config):
            del config.instances["pg"]
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            store.update(broken)
        assert store.has_instance("pg")

    def test_remove_instance(self, store):
        store.add_instance(Instance(name="pg", service_type="postgres", version="16"))
        store.remove_instance("pg")
        assert not store.has_instance("pg")
        with pytest.raises(InstanceNotFoundError):
            store.remove_instance("pg")

    def test_list_instances_sorted(self, store):
        for name in ("redis", "app", "pg"):
            store.add_instance(Instance(name=name, service_type=name, version="1"))
        assert [i.name for i in store.list_instances()] == ["app", "pg", "redis"]

    def test_corrupt_file(self, store):
        store.path.write_text("instances: [unclosed")
        with pytest.raises(DockyardError, match="Corrupt"):
            store.load()

    def test_update_preferences(self, store):
        prefs = store.update_preferences(dns_setup="hosts", domain="lab.test")
        assert prefs.dns_setup == "hosts"
        assert store.get_preferences().domain == "lab.test"

    def test_unknown_preference(self, store):
        with pytest.raises(DockyardError, match="Unknown preference"):
            store.update_preferences(colour="blue")
        assert store.get_preferences().dns_setup == "none"

    def test_no_temp_file_left(self, store):
        store.add_instance(Instance(name="pg", service_type="postgres", version="16"))
        assert not store.path.with_suffix(".yaml.tmp").exists()
