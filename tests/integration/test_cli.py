import pytest
from click.testing import CliRunner
from dockyard.CLI.main import cli
from dockyard.MODELS.instance import InstanceStatus


@pytest.fixture
def invoke(runtime, store, catalog, dns):
    runner = CliRunner()

    def run(*args, input=None):
        obj = {"store": store, "catalog": catalog, "runtime": runtime, "dns": dns}
        return runner.invoke(cli, list(args), obj=obj, input=input)

    return run


def test_cli_help():
    runner = CliRunner()
    result = runner.invoke(cli, ['--help'])
    assert result.exit_code == 0
    assert 'local service orchestrator' in result.output


def test_install_and_list(invoke, store):
    result = invoke('install', 'cache:7.2', '--name', 'redis', '-e', 'MAXMEMORY=1gb')
    assert result.exit_code == 0, result.output
    assert 'Installed cache 7.2 as redis' in result.output
    assert store.get_instance('redis').environment['MAXMEMORY'] == '1gb'

    result = invoke('list')
    assert result.exit_code == 0
    assert 'redis' in result.output
    assert 'running' in result.output


def test_install_prints_url(invoke):
    result = invoke('install', 'clickhouse')
    assert result.exit_code == 0, result.output
    assert 'URL: https://clickhouse-24-1.dockyard.local' in result.output


def test_install_with_dependencies(invoke, store):
    result = invoke('install', 'webapp')
    assert result.exit_code == 0, result.output
    assert store.has_instance('postgres')
    assert store.has_instance('webapp-1-0')


def test_install_existing_without_replace(invoke):
    invoke('install', 'cache', '--yes')
    result = invoke('install', 'cache', '--yes')
    assert result.exit_code != 0
    assert "already exists" in result.output


def test_install_replace_prompt_declined(invoke, store):
    invoke('install', 'cache')
    result = invoke('install', 'cache', input='n\n')
    assert result.exit_code == 0
    assert 'cancelled' in result.output
    assert store.has_instance('cache-7-2')


def test_install_unique(invoke, store):
    invoke('install', 'cache', '--unique')
    result = invoke('install', 'cache', '--unique')
    assert result.exit_code == 0, result.output
    assert store.has_instance('cache-7-2-2')


def test_install_bad_port(invoke, runtime):
    result = invoke('install', 'cache', '--port', 'web:80')
    assert result.exit_code != 0
    assert runtime.calls == []


def test_install_unknown_service(invoke):
    result = invoke('install', 'nope')
    assert result.exit_code == 1
    assert "Service 'nope' not found" in result.output


def test_install_cycle(invoke):
    result = invoke('install', 'loop-a')
    assert result.exit_code == 1
    assert 'Circular dependency' in result.output


def test_stop_start_restart(invoke, store):
    invoke('install', 'cache', '--name', 'redis')

    result = invoke('stop', 'redis')
    assert result.exit_code == 0
    assert store.get_instance('redis').status == InstanceStatus.STOPPED

    result = invoke('stop', 'redis')
    assert result.exit_code == 1
    assert 'already stopped' in result.output

    assert invoke('start', 'redis').exit_code == 0
    assert invoke('restart', 'redis').exit_code == 0


def test_restart_with_init(invoke, runtime):
    invoke('install', 'tracing')
    result = invoke('restart', 'tracing-1-0', '--init')
    assert result.exit_code == 0, result.output
    assert runtime.ops('create').count('dockyard-tracing-1-0-init-schema') == 2


def test_remove(invoke, store, runtime):
    invoke('install', 'cache', '--name', 'redis')
    result = invoke('remove', 'redis', '--volumes', '--yes')
    assert result.exit_code == 0
    assert 'Removed redis' in result.output
    assert not store.has_instance('redis')
    assert runtime.volumes == set()


def test_remove_unknown(invoke):
    result = invoke('remove', 'ghost')
    assert result.exit_code == 1
    assert "Instance 'ghost' not found" in result.output


def test_status(invoke, runtime):
    invoke('install', 'cache', '--name', 'redis')
    runtime.stop_container('dockyard-redis')

    result = invoke('status')
    assert result.exit_code == 0
    assert 'redis' in result.output
    assert 'stopped' in result.output


def test_info_and_logs(invoke, runtime):
    invoke('install', 'cache', '--name', 'redis')
    runtime.log_output['dockyard-redis'] = 'Ready to accept connections'

    result = invoke('info', 'redis')
    assert result.exit_code == 0
    assert 'redis:6379' in result.output

    result = invoke('logs', 'redis')
    assert 'Ready to accept connections' in result.output


def test_deps(invoke):
    result = invoke('deps', 'webapp')
    assert result.exit_code == 0
    assert '○ postgres (16)' in result.output
    assert '[optional]' in result.output
    assert 'Will install: postgres' in result.output


def test_catalog(invoke):
    result = invoke('catalog')
    assert result.exit_code == 0
    assert 'postgres' in result.output
    assert '15, 16' in result.output
