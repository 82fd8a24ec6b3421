"""
Management and reverse-proxy labels put on every managed container.
"""
from typing import Dict

from ..MODELS.settings import DEFAULT_PREFIX

MANAGED_BY = "managed-by"
HTTP_PROTOCOLS = ("http", "https")


def router_name(instance_name: str, prefix: str = DEFAULT_PREFIX) -> str:
    return f"{prefix}-{instance_name}"


def proxy_labels(instance_name: str,
                 port: int,
                 domain: str,
                 tls: bool,
                 prefix: str = DEFAULT_PREFIX) -> Dict[str, str]:
    """
    Traefik routing labels sending `<instance>.<domain>` to `port` inside the container.
    """
    router = router_name(instance_name, prefix)
    labels = {
        "traefik.enable": "true",
        f"traefik.http.routers.{router}.rule": f"Host(`{instance_name}.{domain}`)",
        f"traefik.http.routers.{router}.entrypoints": "web,websecure",
        f"traefik.http.services.{router}.loadbalancer.server.port": str(port),
    }
    if tls:
        labels[f"traefik.http.routers.{router}.tls"] = "true"
    return labels


def management_labels(service_name: str, instance_name: str, prefix: str = DEFAULT_PREFIX) -> Dict[str, str]:
    return {
        MANAGED_BY: prefix,
        f"{prefix}.service": service_name,
        f"{prefix}.instance": instance_name,
    }


def single_container_labels(service_name: str,
                            instance_name: str,
                            version: str,
                            protocol: str,
                            port: int,
                            internal: bool,
                            domain: str,
                            tls: bool,
                            prefix: str = DEFAULT_PREFIX) -> Dict[str, str]:
    """
    Labels for a single-container instance.

    HTTP services that are not internal are routed through the proxy; internal
    services are explicitly excluded from it.
    """
    labels = management_labels(service_name, instance_name, prefix)
    labels[f"{prefix}.version"] = version

    if internal:
        labels["traefik.enable"] = "false"
    elif protocol in HTTP_PROTOCOLS:
        labels.update(proxy_labels(instance_name, port, domain, tls, prefix))
    return labels


def multi_container_labels(service_name: str,
                           instance_name: str,
                           container: str,
                           primary: bool,
                           internal: bool,
                           port: int,
                           domain: str,
                           tls: bool,
                           prefix: str = DEFAULT_PREFIX) -> Dict[str, str]:
    """
    Labels for one container of a multi-container instance. Only the primary is routed.
    """
    labels = management_labels(service_name, instance_name, prefix)
    labels[f"{prefix}.container"] = container
    labels[f"{prefix}.primary"] = "true" if primary else "false"
    labels[f"{prefix}.multi"] = "true"

    if primary and not internal and port > 0:
        labels.update(proxy_labels(instance_name, port, domain, tls, prefix))
    return labels
