"""
Command Line Interface for Dockyard.
"""
import logging
import os
from contextlib import contextmanager

import click

from ..errors import DockyardError, InstallationCancelled
from ..MANAGERS.installer import Installer
from ..MANAGERS.network_manager import NetworkManager
from ..MANAGERS.service_manager import ServiceManager
from ..MODELS.install_options import DataDecision, ExistingData, InstallOptions
from ..PARSERS.catalog_parser import CatalogParser
from ..RUNNERS.dependency_resolver import DependencyResolver
from ..RUNNERS.docker_runtime import DockerRuntime
from ..STORE.config_store import ConfigStore
from ..UTILS.logging_setup import setup_logging


@contextmanager
def _errors():
    try:
        yield
    except InstallationCancelled as e:
        click.echo(str(e) or "Installation cancelled")
    except DockyardError as e:
        raise click.ClickException(str(e))


def _split_service(value):
    if ":" in value:
        service, version = value.split(":", 1)
        return service, version
    return value, ""


def _pairs(values, sep, label):
    pairs = {}
    for value in values:
        if sep not in value:
            raise click.BadParameter(f"expected {label}, got '{value}'")
        key, val = value.split(sep, 1)
        pairs[key] = val
    return pairs


def _store(ctx) -> ConfigStore:
    if 'store' not in ctx.obj:
        store = ConfigStore(ctx.obj.get('home'))
        store.initialize()
        ctx.obj['store'] = store
    return ctx.obj['store']


def _catalog(ctx):
    if 'catalog' not in ctx.obj:
        path = ctx.obj.get('catalog_path') or os.path.join(str(_store(ctx).home), "catalog")
        ctx.obj['catalog'] = CatalogParser().parse(path)
    return ctx.obj['catalog']


def _runtime(ctx):
    if 'runtime' not in ctx.obj:
        ctx.obj['runtime'] = DockerRuntime()
    return ctx.obj['runtime']


def _manager(ctx) -> ServiceManager:
    return ServiceManager(_runtime(ctx), _store(ctx), _catalog(ctx), dns=ctx.obj.get('dns'))


@click.group()
@click.option('--home', envvar='DOCKYARD_HOME', default=None, help='Dockyard home directory')
@click.option('--catalog', 'catalog_path', envvar='DOCKYARD_CATALOG', default=None,
              help='Catalog file or directory')
@click.option('--verbose', '-v', is_flag=True, help='Verbose logging')
@click.pass_context
def cli(ctx, home, catalog_path, verbose):
    """
    Dockyard - local service orchestrator.

    Installs databases, caches, queues and observability stacks as containers
    on a shared network, with their dependencies resolved automatically.
    """
    ctx.ensure_object(dict)
    ctx.obj.setdefault('home', home)
    ctx.obj.setdefault('catalog_path', catalog_path)
    setup_logging(logging.DEBUG if verbose else logging.WARNING)


def _decide_existing_data(data: ExistingData) -> DataDecision:
    click.echo(f"Found data from a previous installation of '{data.instance_name}':")
    for volume in data.volumes:
        click.echo(f"  volume   {volume}")
    for env_file in data.env_files:
        click.echo(f"  env file {env_file}")
    choice = click.prompt(
        "Reuse, delete or cancel?",
        type=click.Choice([d.value for d in DataDecision]),
        default=DataDecision.REUSE.value,
    )
    return DataDecision(choice)


def _confirm_replace(instance_name: str) -> bool:
    return click.confirm(f"Instance '{instance_name}' already exists. Remove and reinstall it?", default=False)


@cli.command()
@click.argument('service')
@click.option('--name', '-n', default='', help='Instance name')
@click.option('--env', '-e', multiple=True, help='Environment override KEY=VALUE')
@click.option('--memory', default=None, help='Memory limit, e.g. 512m')
@click.option('--cpu', default=None, help='CPU limit, e.g. 0.5')
@click.option('--volume', multiple=True, help='Bind mount HOST:CONTAINER')
@click.option('--port', '-p', multiple=True, help='Publish HOST:CONTAINER')
@click.option('--internal', is_flag=True, help='Do not expose through the reverse proxy')
@click.option('--replace', is_flag=True, help='Replace an existing instance of the same name')
@click.option('--unique', is_flag=True, help='Pick a free service-version-N name')
@click.option('--skip-deps', is_flag=True, help='Do not install dependencies')
@click.option('--no-auto-deps', is_flag=True, help='Fail instead of installing missing dependencies')
@click.option('--reuse-data', is_flag=True, help='Reuse data left by a previous install')
@click.option('--clean-data', is_flag=True, help='Delete data left by a previous install')
@click.option('--yes', '-y', is_flag=True, help='Do not prompt')
@click.pass_context
def install(ctx, service, name, env, memory, cpu, volume, port, internal, replace, unique,
            skip_deps, no_auto_deps, reuse_data, clean_data, yes):
    """Install a service from the catalog (SERVICE or SERVICE:VERSION)."""
    service_name, version = _split_service(service)
    with _errors():
        try:
            ports = NetworkManager.parse_port_mappings(list(port))
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint='--port')

        options = InstallOptions(
            service_name=service_name,
            version=version,
            instance_name=name,
            unique_name=unique,
            environment=_pairs(env, '=', 'KEY=VALUE'),
            memory_limit=memory,
            cpu_limit=cpu,
            volumes=_pairs(volume, ':', 'HOST:CONTAINER'),
            port_mappings=ports,
            internal=internal,
            replace=replace,
            skip_dependencies=skip_deps,
            auto_install_deps=not no_auto_deps,
            reuse_existing_data=reuse_data or yes,
            force_clean_data=clean_data,
            confirm_replace=None if yes else _confirm_replace,
            decide_existing_data=None if yes else _decide_existing_data,
        )
        installer = Installer(_runtime(ctx), _store(ctx), _catalog(ctx), dns=ctx.obj.get('dns'))
        instance = installer.install(options)
        click.echo(f"Installed {instance.service_type} {instance.version} as {instance.name}")
        if instance.url:
            click.echo(f"URL: {instance.url}")


@cli.command()
@click.argument('name')
@click.pass_context
def start(ctx, name):
    """Start an instance."""
    with _errors():
        _manager(ctx).start(name)
        click.echo(f"Started {name}")


@cli.command()
@click.argument('name')
@click.pass_context
def stop(ctx, name):
    """Stop an instance."""
    with _errors():
        _manager(ctx).stop(name)
        click.echo(f"Stopped {name}")


@cli.command()
@click.argument('name')
@click.option('--init', 'run_init', is_flag=True, help='Run init containers again')
@click.pass_context
def restart(ctx, name, run_init):
    """Restart an instance."""
    with _errors():
        _manager(ctx).restart(name, run_init=run_init)
        click.echo(f"Restarted {name}")


@cli.command()
@click.argument('name')
@click.option('--force', '-f', is_flag=True, help='Remove without stopping first')
@click.option('--volumes', is_flag=True, help='Also remove volumes and stored environment')
@click.option('--yes', '-y', is_flag=True, help='Do not prompt')
@click.pass_context
def remove(ctx, name, force, volumes, yes):
    """Remove an instance."""
    if volumes and not yes:
        click.confirm(f"Remove {name} and all of its data?", abort=True)
    with _errors():
        warnings = _manager(ctx).remove(name, force=force, remove_volumes=volumes)
        for warning in warnings:
            click.echo(f"Warning: {warning}")
        click.echo(f"Removed {name}")


@cli.command()
@click.argument('name', required=False)
@click.pass_context
def status(ctx, name):
    """Refresh and show instance status"""
    with _errors():
        manager = _manager(ctx)
        if name:
            statuses = {name: manager.refresh_status(name)}
        else:
            statuses = manager.refresh_all()
        click.echo(f"{'INSTANCE':25} {'STATUS':10}")
        click.echo("-" * 36)
        for instance_name in sorted(statuses):
            click.echo(f"{instance_name:25} {statuses[instance_name].value:10}")


@cli.command(name='list')
@click.pass_context
def list_instances(ctx):
    """List installed instances"""
    instances = _store(ctx).list_instances()
    if not instances:
        click.echo("No instances installed.")
        return
    click.echo(f"{'INSTANCE':25} {'SERVICE':15} {'VERSION':10} {'STATUS':10}")
    click.echo("-" * 63)
    for instance in instances:
        click.echo(f"{instance.name:25} {instance.service_type:15} {instance.version:10} {instance.status.value:10}")


@cli.command()
@click.argument('name')
@click.option('--container', '-c', default=None, help='Container of a multi-container instance')
@click.option('--tail', default=100, help='Number of lines')
@click.pass_context
def logs(ctx, name, container, tail):
    """Show instance logs"""
    with _errors():
        click.echo(_manager(ctx).logs(name, container=container, tail=tail))


@cli.command()
@click.argument('name')
@click.pass_context
def info(ctx, name):
    """Show connection details of an instance"""
    with _errors():
        details = _manager(ctx).connection_info(name)
        for key, value in details.items():
            if isinstance(value, list):
                value = ", ".join(value)
            click.echo(f"{key:18} {value}")


@cli.command()
@click.argument('service')
@click.pass_context
def deps(ctx, service):
    """Show the dependency tree of a service"""
    service_name, version = _split_service(service)
    with _errors():
        resolver = DependencyResolver(_catalog(ctx), _store(ctx))
        resolver.validate_dependencies(service_name, version)
        click.echo(resolver.dependency_tree(service_name, version))
        result = resolver.resolve(service_name, version)
        missing = resolver.get_missing_dependencies(result)
        if missing:
            click.echo("Will install: " + ", ".join(node.service_name for node in missing))


@cli.command()
@click.pass_context
def catalog(ctx):
    """List services in the catalog"""
    with _errors():
        for service in _catalog(ctx).list_services():
            versions = ", ".join(sorted(service.versions))
            click.echo(f"{service.name:20} {service.category:12} {versions}")


def main():
    """
    Main entry point for the CLI.
    """
    cli(obj={})


if __name__ == '__main__':
    main()
