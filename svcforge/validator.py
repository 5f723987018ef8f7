"""Input validation for service creation.

Every check raises :class:`~svcforge.errors.ValidationError` naming the
offending field.  Nothing in this module touches the filesystem except
reading the docker-compose file that acts as the port registry.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Iterable

import yaml

from .errors import ValidationError
from .models import (
    DATABASE_NAME_PATTERN,
    DOMAIN_NAME_PATTERN,
    MAX_PORT,
    MIN_PORT,
    SERVICE_NAME_PATTERN,
    VERSION_PATTERN,
    AddonId,
    AddonSelection,
    ServiceConfig,
)

_SERVICE_NAME_RE = re.compile(SERVICE_NAME_PATTERN)
_DOMAIN_NAME_RE = re.compile(DOMAIN_NAME_PATTERN)
_DATABASE_NAME_RE = re.compile(DATABASE_NAME_PATTERN)
_VERSION_RE = re.compile(VERSION_PATTERN)


# ---------------------------------------------------------------------------
# Port registry
# ---------------------------------------------------------------------------


class PortRegistry:
    """The set of host ports already claimed by other services."""

    def __init__(self, ports: Iterable[int] = ()) -> None:
        self._ports: set[int] = set(ports)

    def __contains__(self, port: object) -> bool:
        return port in self._ports

    def __len__(self) -> int:
        return len(self._ports)

    def ports(self) -> list[int]:
        return sorted(self._ports)

    @classmethod
    def from_compose_file(cls, path: str | Path) -> "PortRegistry":
        """Collect published host ports from a docker-compose file.

        A missing file yields an empty registry.  Short syntax
        (``"8080:8080"``, ``"127.0.0.1:8080:80"``, ``"8080-8081:80-81"``) and
        long syntax (``published: 8080``) are both understood.
        """
        compose_path = Path(path)
        if not compose_path.is_file():
            return cls()

        remediation = f"Fix {compose_path} or point SVCFORGE_COMPOSE_FILE at a valid file."
        try:
            data = yaml.safe_load(compose_path.read_text(encoding="utf-8")) or {}
        except (yaml.YAMLError, UnicodeDecodeError) as exc:
            raise ValidationError(
                "port registry", f"{compose_path} is not valid YAML: {exc}", remediation
            ) from exc
        if not isinstance(data, dict):
            raise ValidationError(
                "port registry", f"{compose_path} must contain a mapping", remediation
            )

        services = data.get("services") or {}
        if not isinstance(services, dict):
            raise ValidationError(
                "port registry", f"'services' in {compose_path} must be a mapping", remediation
            )
        ports: set[int] = set()
        for service in services.values():
            if not isinstance(service, dict):
                continue
            for entry in service.get("ports") or []:
                ports.update(_published_ports(entry))
        return cls(ports)


def _published_ports(entry: Any) -> list[int]:
    """Return the host-side ports of one compose ``ports:`` entry."""
    if isinstance(entry, dict):
        published = entry.get("published")
        return _expand_port_range(str(published)) if published is not None else []

    spec = str(entry).split("/", 1)[0]
    parts = spec.split(":")
    if len(parts) == 1:
        # Container-only port, no host binding.
        return []
    return _expand_port_range(parts[-2])


def _is_number(text: str) -> bool:
    # str.isdigit() alone also accepts superscripts that int() rejects.
    return text.isascii() and text.isdigit()


def _expand_port_range(value: str) -> list[int]:
    value = value.strip()
    if "-" in value:
        start, _, end = value.partition("-")
        if _is_number(start) and _is_number(end):
            return list(range(int(start), int(end) + 1))
        return []
    return [int(value)] if _is_number(value) else []


# ---------------------------------------------------------------------------
# Field validators
# ---------------------------------------------------------------------------


def validate_service_name(name: str) -> str:
    if not _SERVICE_NAME_RE.match(name or ""):
        raise ValidationError(
            "service name",
            f"{name!r} must be lowercase, alphanumeric + hyphens, start with a "
            "letter, and end with '-service'",
        )
    return name


def default_domain(service_name: str) -> str:
    """First hyphen-separated word of the name, without ``-service``.

    ``currency-service`` -> ``currency``; ``budget-report-service`` -> ``budget``.
    """
    stem = re.sub(r"-service$", "", service_name)
    return stem.split("-", 1)[0]


def validate_domain_name(domain: str) -> str:
    if not _DOMAIN_NAME_RE.match(domain or ""):
        raise ValidationError(
            "domain name",
            f"{domain!r} must be lowercase alphanumeric starting with a letter",
        )
    return domain


def class_name_for(domain: str) -> str:
    """PascalCase class name stem: first letter upper, the rest lower."""
    return domain[:1].upper() + domain[1:].lower()


def validate_port(port: int | str, registry: PortRegistry | None = None) -> int:
    text = str(port).strip()
    if not _is_number(text):
        raise ValidationError("port", f"{port!r} is not a number")
    value = int(text)
    if value < MIN_PORT or value > MAX_PORT:
        raise ValidationError(
            "port", f"{value} must be between {MIN_PORT} and {MAX_PORT}"
        )
    if registry is not None and value in registry:
        raise ValidationError(
            "port",
            f"{value} is already in use by another service",
            "Pick a free port; used ports are listed in docker-compose.yml.",
        )
    return value


def validate_database_name(name: str) -> str:
    if not _DATABASE_NAME_RE.match(name or ""):
        raise ValidationError(
            "database name",
            f"{name!r} must be lowercase alphanumeric + underscores, starting with a letter",
        )
    return name


def validate_version(version: str) -> str:
    if not _VERSION_RE.match(version or ""):
        raise ValidationError(
            "service-common version",
            f"{version!r} must look like 1.2.3 or 1.2.3-SNAPSHOT",
        )
    return version


def validate_addons(selection: AddonSelection) -> AddonSelection:
    """Check cross-add-on requirements."""
    if AddonId.SHEDLOCK in selection and AddonId.POSTGRESQL not in selection:
        raise ValidationError(
            "add-ons",
            "ShedLock add-on requires PostgreSQL add-on",
            "Enable the postgresql add-on or drop shedlock.",
        )
    return selection


# ---------------------------------------------------------------------------
# ServiceConfig construction
# ---------------------------------------------------------------------------


def build_service_config(
    name: str,
    port: int | str,
    *,
    domain: str | None = None,
    database_name: str | None = None,
    java_version: str = "24",
    service_common_version: str = "0.0.1-SNAPSHOT",
    addons: AddonSelection | None = None,
    registry: PortRegistry | None = None,
) -> ServiceConfig:
    """Validate raw input and return an immutable :class:`ServiceConfig`.

    The database name is only meaningful when PostgreSQL is enabled; it then
    defaults to the domain.  Without PostgreSQL it is always empty.

    Raises:
        ValidationError: for the first field that fails validation.
    """
    selection = addons or AddonSelection()
    validate_addons(selection)

    validate_service_name(name)
    resolved_domain = validate_domain_name(domain or default_domain(name))
    resolved_port = validate_port(port, registry)
    validate_version(service_common_version)
    if not java_version or not str(java_version).strip():
        raise ValidationError("java version", "must not be empty")

    resolved_db = ""
    if AddonId.POSTGRESQL in selection:
        resolved_db = validate_database_name(database_name or resolved_domain)

    return ServiceConfig(
        name=name,
        domain=resolved_domain,
        class_name=class_name_for(resolved_domain),
        port=resolved_port,
        database_name=resolved_db,
        java_version=str(java_version).strip(),
        service_common_version=service_common_version,
    )
