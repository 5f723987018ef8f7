"""svcforge configuration.

Centralised, typed configuration for service creation. All settings use
Pydantic v2 models so they can be validated at construction time and serialised
to/from JSON or environment variables without boiler-plate.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

DEFAULT_TEMPLATE_REPO = "git@github.com:budgetanalyzer/spring-boot-service-template.git"


class DefaultsConfig(BaseModel):
    """Defaults offered when prompting for service details."""

    java_version: str = Field(default="24")
    service_common_version: str = Field(default="0.0.1-SNAPSHOT")


class GitHubConfig(BaseModel):
    """Settings for optional remote repository creation."""

    organization: str = Field(default="budgetanalyzer")
    private: bool = Field(default=True)


class BuildConfig(BaseModel):
    """Tuning knobs for the external tool steps."""

    run_build: bool = Field(default=True, description="Run ./gradlew clean build after composing")
    build_timeout: int = Field(default=1800, ge=60, description="Gradle timeout in seconds")
    git_timeout: int = Field(default=300, ge=10, description="git/gh timeout in seconds")


class Config(BaseModel):
    """Global svcforge configuration.

    Instances are typically created once by the CLI entry point and then
    passed to :class:`~svcforge.pipeline.ServiceCreator`.
    """

    workspace_dir: Path = Field(default=Path(".."))
    template_repo: str = Field(default=DEFAULT_TEMPLATE_REPO)
    template_dir: Path | None = Field(
        default=None, description="Local template checkout copied instead of cloning"
    )
    addons_dir_name: str = Field(default="addons")
    compose_file: Path | None = Field(
        default=None, description="docker-compose file listing ports already in use"
    )
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    build: BuildConfig = Field(default_factory=BuildConfig)

    # ------------------------------------------------------------------
    # Derived paths (read-only properties)
    # ------------------------------------------------------------------

    @property
    def compose_path(self) -> Path:
        """docker-compose file used as the registry of used ports."""
        if self.compose_file is not None:
            return self.compose_file
        return self.workspace_dir / "orchestration" / "docker-compose.yml"

    def service_dir(self, service_name: str) -> Path:
        """Directory where a new service is created (a workspace sibling)."""
        return self.workspace_dir / service_name

    def addons_path(self, project_root: Path) -> Path:
        """Fragment directory inside a cloned template."""
        return project_root / self.addons_dir_name

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path) -> Path:
        """Persist the configuration to a JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return path

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load a previously-saved configuration from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional):
            SVCFORGE_WORKSPACE, SVCFORGE_TEMPLATE_REPO, SVCFORGE_TEMPLATE_DIR,
            SVCFORGE_COMPOSE_FILE, SVCFORGE_JAVA_VERSION,
            SVCFORGE_SERVICE_COMMON_VERSION, SVCFORGE_GITHUB_ORG,
            SVCFORGE_SKIP_BUILD.
        """
        kwargs: dict[str, Any] = {}
        if os.environ.get("SVCFORGE_WORKSPACE"):
            kwargs["workspace_dir"] = Path(os.environ["SVCFORGE_WORKSPACE"])
        if os.environ.get("SVCFORGE_TEMPLATE_REPO"):
            kwargs["template_repo"] = os.environ["SVCFORGE_TEMPLATE_REPO"]
        if os.environ.get("SVCFORGE_TEMPLATE_DIR"):
            kwargs["template_dir"] = Path(os.environ["SVCFORGE_TEMPLATE_DIR"])
        if os.environ.get("SVCFORGE_COMPOSE_FILE"):
            kwargs["compose_file"] = Path(os.environ["SVCFORGE_COMPOSE_FILE"])

        defaults_kwargs: dict[str, Any] = {}
        if os.environ.get("SVCFORGE_JAVA_VERSION"):
            defaults_kwargs["java_version"] = os.environ["SVCFORGE_JAVA_VERSION"]
        if os.environ.get("SVCFORGE_SERVICE_COMMON_VERSION"):
            defaults_kwargs["service_common_version"] = os.environ["SVCFORGE_SERVICE_COMMON_VERSION"]

        github_kwargs: dict[str, Any] = {}
        if os.environ.get("SVCFORGE_GITHUB_ORG"):
            github_kwargs["organization"] = os.environ["SVCFORGE_GITHUB_ORG"]

        build_kwargs: dict[str, Any] = {}
        if os.environ.get("SVCFORGE_SKIP_BUILD", "").lower() in ("1", "true", "yes"):
            build_kwargs["run_build"] = False

        return cls(
            **kwargs,
            defaults=DefaultsConfig(**defaults_kwargs),
            github=GitHubConfig(**github_kwargs),
            build=BuildConfig(**build_kwargs),
        )
