"""Pydantic v2 models for service composition.

Defines the immutable service configuration, the closed set of add-ons and
the per-step reporting structures returned by the composer.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Iterable

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

SERVICE_NAME_PATTERN = r"^[a-z][a-z0-9-]*-service$"
DOMAIN_NAME_PATTERN = r"^[a-z][a-z0-9]*$"
DATABASE_NAME_PATTERN = r"^[a-z][a-z0-9_]*$"
VERSION_PATTERN = r"^[0-9]+\.[0-9]+\.[0-9]+(-[A-Z]+)?$"

MIN_PORT = 1024
MAX_PORT = 65535

BASE_PACKAGE = "org.budgetanalyzer"


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class AddonId(str, Enum):
    """An optional bundle that can be composed into a generated service.

    Declaration order is the order in which add-ons are applied.
    """
    WEB = "web"
    POSTGRESQL = "postgresql"
    REDIS = "redis"
    RABBITMQ = "rabbitmq"
    WEBFLUX = "webflux"
    SCHEDULING = "scheduling"
    SHEDLOCK = "shedlock"
    SPRINGDOC = "springdoc"
    TESTCONTAINERS = "testcontainers"
    SECURITY = "security"

    @property
    def fragment_dir(self) -> str | None:
        """Directory under ``addons/`` holding this add-on's fragments."""
        return _FRAGMENT_DIRS.get(self)

    @property
    def label(self) -> str:
        return _LABELS[self]

    @classmethod
    def parse(cls, value: str) -> "AddonId":
        """Look up an add-on by id or fragment directory name."""
        key = value.strip().lower()
        for addon in cls:
            if key in (addon.value, addon.fragment_dir):
                return addon
        raise ValueError(f"Unknown add-on: {value!r}")


_FRAGMENT_DIRS: dict[AddonId, str] = {
    AddonId.WEB: "spring-boot-web",
    AddonId.POSTGRESQL: "postgresql-flyway",
    AddonId.REDIS: "redis",
    AddonId.RABBITMQ: "rabbitmq-spring-cloud",
    AddonId.WEBFLUX: "webflux",
    AddonId.SHEDLOCK: "shedlock",
    AddonId.SPRINGDOC: "springdoc",
    AddonId.SECURITY: "spring-security",
}

_LABELS: dict[AddonId, str] = {
    AddonId.WEB: "Spring Boot Web (REST API with embedded Tomcat)",
    AddonId.POSTGRESQL: "PostgreSQL + Flyway (database persistence with migrations)",
    AddonId.REDIS: "Redis (caching and session storage)",
    AddonId.RABBITMQ: "RabbitMQ + Spring Cloud Stream (event-driven messaging)",
    AddonId.WEBFLUX: "WebFlux WebClient (reactive HTTP client)",
    AddonId.SCHEDULING: "Scheduling (@Scheduled tasks)",
    AddonId.SHEDLOCK: "ShedLock (distributed scheduled task locking)",
    AddonId.SPRINGDOC: "SpringDoc OpenAPI (API documentation)",
    AddonId.TESTCONTAINERS: "TestContainers (smoke test with real infrastructure)",
    AddonId.SECURITY: "Spring Security (authentication and authorization)",
}

INFRASTRUCTURE_ADDONS: tuple[AddonId, ...] = (
    AddonId.POSTGRESQL,
    AddonId.REDIS,
    AddonId.RABBITMQ,
)


class FragmentKind(str, Enum):
    """The shared file a fragment is merged into."""
    DEPENDENCY_CATALOG = "dependency-catalog"
    DEPENDENCY_MANAGEMENT = "dependency-management"
    BUILD_DESCRIPTOR = "build-descriptor"
    RUNTIME_CONFIG = "runtime-config"
    MIGRATION_SCRIPT = "migration-script"
    SOURCE_PATCH = "source-patch"


# ---------------------------------------------------------------------------
# Add-on selection
# ---------------------------------------------------------------------------

class AddonSelection(BaseModel):
    """A set of enabled add-ons. Insertion order is irrelevant."""

    model_config = ConfigDict(frozen=True)

    addons: frozenset[AddonId] = Field(default_factory=frozenset)

    @classmethod
    def of(cls, *addons: AddonId | str) -> "AddonSelection":
        return cls(addons=frozenset(
            a if isinstance(a, AddonId) else AddonId.parse(a) for a in addons
        ))

    @classmethod
    def parse(cls, raw: str | Iterable[str]) -> "AddonSelection":
        """Parse a comma-separated string (or iterable) of add-on ids."""
        items = raw.split(",") if isinstance(raw, str) else list(raw)
        return cls.of(*(item for item in items if item.strip()))

    def ordered(self) -> list[AddonId]:
        """Enabled add-ons in declaration order."""
        return [addon for addon in AddonId if addon in self.addons]

    def infrastructure(self) -> list[AddonId]:
        return [addon for addon in INFRASTRUCTURE_ADDONS if addon in self.addons]

    def __contains__(self, addon: object) -> bool:
        return addon in self.addons

    def __len__(self) -> int:
        return len(self.addons)


# ---------------------------------------------------------------------------
# Service configuration
# ---------------------------------------------------------------------------

class ServiceConfig(BaseModel):
    """Immutable description of the service to generate.

    Instances are produced by :func:`svcforge.validator.build_service_config`
    from validated input; field constraints are re-checked here so a
    ``ServiceConfig`` can never hold an invalid value.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., pattern=SERVICE_NAME_PATTERN)
    domain: str = Field(..., pattern=DOMAIN_NAME_PATTERN)
    class_name: str = Field(..., description="PascalCase name derived from the domain")
    port: int = Field(..., ge=MIN_PORT, le=MAX_PORT)
    database_name: str = Field(default="", description="Empty when PostgreSQL is not used")
    java_version: str = Field(default="24")
    service_common_version: str = Field(default="0.0.1-SNAPSHOT", pattern=VERSION_PATTERN)

    @property
    def package_name(self) -> str:
        return f"{BASE_PACKAGE}.{self.domain}"

    @property
    def package_path(self) -> str:
        return self.package_name.replace(".", "/")

    @property
    def application_class(self) -> str:
        return f"{self.class_name}Application"

    @property
    def entry_point_path(self) -> str:
        """Relative path of the generated application entry point."""
        return f"src/main/java/{self.package_path}/{self.application_class}.java"

    def placeholders(self) -> dict[str, str]:
        """Return the ``{TOKEN} -> value`` map used for substitution."""
        return {
            "{SERVICE_NAME}": self.name,
            "{DOMAIN_NAME}": self.domain,
            "{ServiceClassName}": self.class_name,
            "{SERVICE_PORT}": str(self.port),
            "{DATABASE_NAME}": self.database_name,
            "{SERVICE_COMMON_VERSION}": self.service_common_version,
            "{JAVA_VERSION}": self.java_version,
        }


# ---------------------------------------------------------------------------
# Fragments
# ---------------------------------------------------------------------------

class AddonFragment(BaseModel):
    """A read-only content block contributed by one add-on."""

    model_config = ConfigDict(frozen=True)

    addon: AddonId
    kind: FragmentKind
    path: Path

    @property
    def filename(self) -> str:
        return self.path.name

    def read(self) -> str:
        return self.path.read_text(encoding="utf-8")


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

class StepResult(BaseModel):
    """Outcome of one composition step."""
    name: str
    success: bool = True
    detail: str = ""
    files: list[str] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)


class CompositionReport(BaseModel):
    """Aggregate of every step executed during one composition run."""
    service: str
    addons: list[AddonId] = Field(default_factory=list)
    steps: list[StepResult] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.steps) and all(step.success for step in self.steps)

    @property
    def notes(self) -> list[str]:
        return [note for step in self.steps for note in step.notes]

    def add(self, step: StepResult) -> StepResult:
        self.steps.append(step)
        return step

    def step(self, name: str) -> StepResult | None:
        for step in self.steps:
            if step.name == name:
                return step
        return None
