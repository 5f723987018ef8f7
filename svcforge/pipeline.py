"""svcforge service creation workflow.

Runs the end-to-end sequence that turns a template repository into a new
microservice next to the orchestration checkout:

1. PREFLIGHT  -- git and java must be installed; gh is optional.
2. VALIDATE   -- build an immutable ServiceConfig; no filesystem writes yet.
3. TEMPLATE   -- clone (or copy) the template into the service directory.
4. COMPOSE    -- substitute placeholders, merge add-ons, write the smoke test.
5. GIT        -- git init and the initial commit.
6. GITHUB     -- optionally create and push the remote repository.
7. BUILD      -- optionally run ./gradlew clean build.

A failure before step 5 removes the half-built directory; once ``.git``
exists nothing is deleted.

Usage::

    python -m svcforge.pipeline
    python -m svcforge.pipeline --name currency-service --port 8084 \\
        --addons web,postgresql,testcontainers --yes
"""

from __future__ import annotations

import argparse
import asyncio
import shutil
import sys
import tempfile
import time
from pathlib import Path
from typing import Callable

from pydantic import BaseModel, ConfigDict, Field
from rich.prompt import Confirm, Prompt

from svcforge.composer import ServiceComposer, TemplateRenderer
from svcforge.config import Config
from svcforge.errors import (
    CompositionError,
    ExternalToolError,
    ServiceForgeError,
    ValidationError,
)
from svcforge.models import AddonId, AddonSelection, CompositionReport, ServiceConfig
from svcforge.preflight import PrerequisiteReport, check_prerequisites, github_available
from svcforge.utils import (
    console,
    format_duration,
    print_banner,
    print_error,
    print_info,
    print_section,
    print_success,
    print_summary_table,
    print_warning,
)
from svcforge.validator import (
    PortRegistry,
    build_service_config,
    default_domain,
    validate_addons,
    validate_database_name,
    validate_domain_name,
    validate_port,
    validate_service_name,
    validate_version,
)
from svcforge.vcs import (
    clone_template,
    create_github_repository,
    initialize_repository,
    materialize_template,
    run_build,
)

# ---------------------------------------------------------------------------
# Request / result models
# ---------------------------------------------------------------------------


class ServiceRequest(BaseModel):
    """Raw, not yet validated input for one service creation run."""

    model_config = ConfigDict(frozen=True)

    name: str
    port: str
    domain: str | None = None
    database_name: str | None = None
    java_version: str = "24"
    service_common_version: str = "0.0.1-SNAPSHOT"
    addons: AddonSelection = Field(default_factory=AddonSelection)
    create_github: bool = False
    run_build: bool = True
    overwrite: bool = False


class CreationResult(BaseModel):
    """Everything the workflow produced."""

    service: ServiceConfig
    service_dir: Path
    report: CompositionReport
    github_url: str | None = None
    built: bool = False
    warnings: list[str] = Field(default_factory=list)
    duration: str = ""


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------


class ServiceCreator:
    """Creates one service from the template.

    Usage::

        creator = ServiceCreator(Config.from_env())
        result = await creator.run(ServiceRequest(name="currency-service", port="8084"))
    """

    def __init__(self, config: Config, renderer: TemplateRenderer | None = None) -> None:
        self.config = config
        self.renderer = renderer or TemplateRenderer()
        self.prerequisites: PrerequisiteReport | None = None

    async def preflight(self) -> PrerequisiteReport:
        """Check external tools once per creator."""
        if self.prerequisites is None:
            self.prerequisites = await check_prerequisites()
        return self.prerequisites

    def port_registry(self) -> PortRegistry:
        return PortRegistry.from_compose_file(self.config.compose_path)

    def build_config(self, request: ServiceRequest) -> ServiceConfig:
        """Validate *request* into a ``ServiceConfig`` without touching disk."""
        return build_service_config(
            request.name,
            request.port,
            domain=request.domain,
            database_name=request.database_name,
            java_version=request.java_version,
            service_common_version=request.service_common_version,
            addons=request.addons,
            registry=self.port_registry(),
        )

    async def run(self, request: ServiceRequest) -> CreationResult:
        """Execute the full workflow.

        Raises:
            MissingDependencyError: before anything else happens.
            ValidationError: before any filesystem mutation.
            CompositionError: the incomplete directory has been removed.
            ExternalToolError: from git, or from the build (tree preserved).
        """
        start = time.monotonic()
        await self.preflight()

        service = self.build_config(request)
        service_dir = self.config.service_dir(service.name)
        self._prepare_target(service_dir, request.overwrite)

        try:
            report = await self._compose(service, request.addons, service_dir)
            print_section("Initializing Git Repository")
            await initialize_repository(
                service_dir,
                service,
                request.addons,
                self.renderer,
                timeout=self.config.build.git_timeout,
            )
            print_success("Initial commit created")
        except Exception:
            self._cleanup(service_dir)
            raise

        result = CreationResult(service=service, service_dir=service_dir, report=report)

        if request.create_github:
            await self._publish(service_dir, service, result)

        if request.run_build and self.config.build.run_build:
            print_section("Validating Build")
            print_info("Running ./gradlew clean build...")
            await run_build(service_dir, timeout=self.config.build.build_timeout)
            result.built = True
            print_success("Build successful")

        result.duration = format_duration(time.monotonic() - start)
        print_summary(result)
        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _prepare_target(self, service_dir: Path, overwrite: bool) -> None:
        if not service_dir.exists():
            return
        if not overwrite:
            raise ValidationError(
                "service name",
                f"directory {service_dir} already exists",
                "Pass --overwrite to delete it, or pick another service name.",
            )
        print_warning(f"Removing existing directory: {service_dir}")
        shutil.rmtree(service_dir)

    async def _compose(
        self,
        service: ServiceConfig,
        addons: AddonSelection,
        service_dir: Path,
    ) -> CompositionReport:
        print_section("Cloning Template Repository")
        with tempfile.TemporaryDirectory(prefix="svcforge-") as scratch:
            if self.config.template_dir is not None:
                template_root = self.config.template_dir
                print_info(f"Using local template at {template_root}")
            else:
                template_root = await clone_template(
                    self.config.template_repo,
                    Path(scratch) / "template",
                    timeout=self.config.build.git_timeout,
                )
            materialize_template(
                template_root,
                service_dir,
                exclude=(".git", self.config.addons_dir_name),
            )
            print_success(f"Template copied to {service_dir}")

            print_section("Composing Service")
            composer = ServiceComposer(
                self.config.addons_path(template_root), renderer=self.renderer
            )
            report = await composer.compose(service_dir, service, addons)

        print_report(report)
        return report

    async def _publish(
        self,
        service_dir: Path,
        service: ServiceConfig,
        result: CreationResult,
    ) -> None:
        print_section("Creating GitHub Repository")
        github = self.config.github
        if not await github_available():
            message = "gh CLI not installed or not authenticated. Skipping GitHub integration."
            print_warning(message)
            print_info("Run 'gh auth login' to enable GitHub integration.")
            result.warnings.append(message)
            return

        print_info(f"Creating GitHub repository: {github.organization}/{service.name}...")
        try:
            result.github_url = await create_github_repository(
                service_dir,
                github.organization,
                service.name,
                private=github.private,
                timeout=self.config.build.git_timeout,
            )
        except ExternalToolError as exc:
            # The local repository is complete; publishing can be redone by hand.
            print_error("Failed to create GitHub repository")
            print_warning(f"You can create it manually later with: {exc.remediation}")
            result.warnings.append(str(exc))
            return
        print_success("GitHub repository created and pushed")

    def _cleanup(self, service_dir: Path) -> None:
        if not service_dir.exists():
            return
        if (service_dir / ".git").exists():
            print_warning(f"Keeping {service_dir} for inspection (git history exists)")
            return
        print_warning(f"Removing incomplete service directory: {service_dir}")
        shutil.rmtree(service_dir, ignore_errors=True)


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


def print_report(report: CompositionReport) -> None:
    """Print one row per composition step, then the collected notes."""
    print_summary_table(
        {
            step.name: f"{'✓' if step.success else '✗'} {step.detail}"
            for step in report.steps
        },
        title="Composition",
    )
    for note in report.notes:
        print_info(note)


def print_summary(result: CreationResult) -> None:
    service = result.service
    details = {
        "Name": service.name,
        "Domain": service.domain,
        "Class": service.application_class,
        "Port": str(service.port),
    }
    if service.database_name:
        details["Database"] = service.database_name
    details["Add-ons"] = ", ".join(a.value for a in result.report.addons) or "none"
    details["Location"] = str(result.service_dir)
    if result.github_url:
        details["GitHub"] = result.github_url
    details["Build"] = "passed" if result.built else "skipped"
    details["Duration"] = result.duration

    print_section("Service Created Successfully")
    print_summary_table(details, title="Service Details")
    for warning in result.warnings:
        print_warning(warning)

    print_banner(
        "Next Steps",
        "\n".join([
            "1. Review the generated service:",
            f"   cd {result.service_dir}",
            "2. Run the service locally:",
            "   ./gradlew bootRun",
            "3. Add it to the orchestration docker-compose.yml:",
            "   service definition, environment variables"
            + (", database" if service.database_name else ""),
            "4. Configure NGINX routing for its API endpoints if needed",
        ]),
    )


# ---------------------------------------------------------------------------
# Interactive input
# ---------------------------------------------------------------------------


def _ask(prompt: str, validate: Callable[[str], object], default: str | None = None) -> str:
    """Prompt until *validate* accepts the answer."""
    while True:
        if default is None:
            raw = Prompt.ask(prompt, console=console)
        else:
            raw = Prompt.ask(prompt, default=default, console=console)
        raw = (raw or "").strip()
        try:
            validate(raw)
        except ValidationError as exc:
            print_error(str(exc))
            continue
        return raw


def _prompt_addons() -> AddonSelection:
    print_section("Add-On Selection")
    while True:
        chosen = [
            addon
            for addon in AddonId
            if Confirm.ask(f"  {addon.label}", default=False, console=console)
        ]
        try:
            return validate_addons(AddonSelection.of(*chosen))
        except ValidationError as exc:
            print_error(str(exc))


def _parse_addons(raw: str) -> AddonSelection:
    try:
        return AddonSelection.parse(raw)
    except ValueError as exc:
        choices = ", ".join(addon.value for addon in AddonId)
        raise ValidationError("add-ons", str(exc), f"Choose from: {choices}") from exc


def _require_interactive(interactive: bool, flag: str, field: str) -> None:
    if not interactive:
        raise ValidationError(field, f"{flag} is required with --yes")


async def collect_request(args: argparse.Namespace, creator: ServiceCreator) -> ServiceRequest:
    """Merge CLI flags with interactive prompts into a ``ServiceRequest``.

    With ``--yes`` nothing is prompted: required values must come from
    flags and everything else takes its default.
    """
    interactive = not args.yes
    defaults = creator.config.defaults
    registry = creator.port_registry()

    if interactive:
        print_section("Service Configuration")

    name = args.name
    if name is None:
        _require_interactive(interactive, "--name", "service name")
        name = _ask("Service name (e.g. 'currency-service')", validate_service_name)

    domain = args.domain
    if domain is None and interactive:
        domain = _ask("Domain name", validate_domain_name, default=default_domain(name))

    port = args.port
    if port is None:
        _require_interactive(interactive, "--port", "port")
        port = _ask("Service port (e.g. 8082)", lambda raw: validate_port(raw, registry))

    java_version = args.java_version
    if java_version is None:
        java_version = (
            Prompt.ask("Java version", default=defaults.java_version, console=console)
            if interactive
            else defaults.java_version
        )

    common_version = args.service_common_version
    if common_version is None:
        common_version = (
            _ask(
                "service-common version",
                validate_version,
                default=defaults.service_common_version,
            )
            if interactive
            else defaults.service_common_version
        )

    if args.addons is not None:
        addons = _parse_addons(args.addons)
    elif interactive:
        addons = _prompt_addons()
    else:
        addons = AddonSelection()

    database = args.database
    if database is None and interactive and AddonId.POSTGRESQL in addons:
        print_section("PostgreSQL Configuration")
        database = _ask(
            "Database name",
            validate_database_name,
            default=domain or default_domain(name),
        )

    create_github = args.github
    if create_github is None:
        create_github = False
        if interactive:
            print_section("GitHub Integration")
            if await github_available():
                create_github = Confirm.ask(
                    "Create GitHub repository?", default=False, console=console
                )
            else:
                print_warning("gh CLI not available or not authenticated. Skipping.")

    overwrite = args.overwrite
    service_dir = creator.config.service_dir(name)
    if service_dir.exists() and not overwrite and interactive:
        overwrite = Confirm.ask(
            f"Directory {service_dir} already exists. Delete and continue?",
            default=False,
            console=console,
        )

    request = ServiceRequest(
        name=name,
        port=str(port),
        domain=domain,
        database_name=database,
        java_version=java_version,
        service_common_version=common_version,
        addons=addons,
        create_github=create_github,
        run_build=not args.no_build,
        overwrite=overwrite,
    )

    if interactive:
        preview = creator.build_config(request)
        print_section("Configuration Summary")
        print_summary_table(
            {
                "Service Name": preview.name,
                "Domain Name": preview.domain,
                "Class Name": preview.application_class,
                "Service Port": str(preview.port),
                "Database Name": preview.database_name or "-",
                "Java Version": preview.java_version,
                "service-common Version": preview.service_common_version,
                "Add-ons": ", ".join(a.value for a in addons.ordered()) or "none",
                "Service Directory": str(service_dir),
            },
            title="Configuration",
        )
        if not Confirm.ask("Is this correct?", default=True, console=console):
            raise ServiceForgeError(
                "Configuration rejected", "Re-run svcforge to start over."
            )

    return request


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="svcforge",
        description="Create a Spring Boot microservice from the service template",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python -m svcforge.pipeline\n"
            "  python -m svcforge.pipeline --name currency-service --port 8084 --yes\n"
            "  python -m svcforge.pipeline --name report-service --port 8090 \\\n"
            "      --addons web,postgresql,testcontainers --database reports --no-build\n"
        ),
    )
    parser.add_argument("--name", help="Service name, must end with '-service'")
    parser.add_argument("--domain", help="Domain (default: first word of the name)")
    parser.add_argument("--port", help="Service port (1024-65535, unused)")
    parser.add_argument("--database", help="Database name (PostgreSQL add-on only)")
    parser.add_argument("--java-version", help="Java toolchain version")
    parser.add_argument("--service-common-version", help="service-common library version")
    parser.add_argument(
        "--addons",
        help=f"Comma-separated add-ons: {', '.join(a.value for a in AddonId)}",
    )
    parser.add_argument(
        "--github",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Create a GitHub repository (default: ask)",
    )
    parser.add_argument("--no-build", action="store_true", help="Skip ./gradlew clean build")
    parser.add_argument("--yes", "-y", action="store_true", help="Do not prompt")
    parser.add_argument(
        "--overwrite", action="store_true", help="Delete an existing service directory"
    )
    parser.add_argument("--template-dir", help="Use a local template checkout instead of cloning")
    parser.add_argument("--workspace", help="Workspace directory (default: ..)")
    return parser


def config_from_args(args: argparse.Namespace) -> Config:
    config = Config.from_env()
    update: dict[str, object] = {}
    if args.workspace:
        update["workspace_dir"] = Path(args.workspace)
    if args.template_dir:
        update["template_dir"] = Path(args.template_dir)
    return config.model_copy(update=update) if update else config


async def _run_cli(args: argparse.Namespace, config: Config) -> CreationResult:
    creator = ServiceCreator(config)
    print_banner(
        "svcforge",
        "[bold bright_cyan]Microservice Creator[/bold bright_cyan]\n"
        f"Workspace : {config.workspace_dir.resolve()}\n"
        f"Template  : {config.template_dir or config.template_repo}",
    )
    await creator.preflight()
    request = await collect_request(args, creator)
    return await creator.run(request)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for ``python -m svcforge.pipeline``."""
    parser = build_parser()
    args = parser.parse_args(argv)
    config = config_from_args(args)

    try:
        asyncio.run(_run_cli(args, config))
    except ServiceForgeError as exc:
        if isinstance(exc, CompositionError) and exc.report is not None:
            print_report(exc.report)
        print_error(str(exc))
        if exc.remediation:
            print_info(exc.remediation)
        sys.exit(1)
    except KeyboardInterrupt:
        print_error("Aborted")
        sys.exit(130)


if __name__ == "__main__":
    main()
