"""git, gh and gradle invocations around a composed service.

Each tool is treated as an opaque command: it is run, its exit status is
inspected, and a non-zero status raises :class:`ExternalToolError` carrying
the exit code and a command the operator can run by hand.
"""

from __future__ import annotations

import shutil
from pathlib import Path

from .composer.templates import TemplateRenderer
from .errors import ExternalToolError, ServiceForgeError
from .models import AddonSelection, ServiceConfig
from .utils import console, run_command

COMMIT_MESSAGE_TEMPLATE = "git/initial-commit.txt.j2"


async def _run_tool(
    *cmd: str,
    cwd: str | Path | None = None,
    timeout: int = 300,
    remediation: str = "",
    capture: bool = True,
) -> str:
    """Run an external command and return its stdout.

    Raises ExternalToolError if the command cannot be started, exits with
    a non-zero code or times out.
    """
    cmd_str = " ".join(cmd)
    try:
        code, stdout, stderr = await run_command(
            list(cmd), cwd=cwd, timeout=timeout, capture=capture
        )
    except OSError as exc:
        # Missing or non-executable program; 127 is the shell convention.
        raise ExternalToolError(cmd_str, 127, str(exc), remediation) from exc
    if code != 0:
        raise ExternalToolError(cmd_str, code, stderr, remediation)
    return stdout


# ---------------------------------------------------------------------------
# Template acquisition
# ---------------------------------------------------------------------------


async def clone_template(repo: str, dest: str | Path, timeout: int = 300) -> Path:
    """Clone the template repository into *dest* (which must not exist)."""
    dest = Path(dest)
    console.print(f"[cyan]Cloning template[/cyan] [bold]{repo}[/bold]...")
    await _run_tool(
        "git", "clone", "--quiet", repo, str(dest),
        timeout=timeout,
        remediation=f"git clone {repo} {dest}",
    )
    return dest


def materialize_template(
    template_root: str | Path,
    service_dir: str | Path,
    exclude: tuple[str, ...] = (".git",),
) -> Path:
    """Copy a template checkout into *service_dir*.

    Top-level entries named in *exclude* (the template's own history and its
    fragment directory) are left behind, so the service starts without git
    history and without the fragments it was composed from.
    """
    template_root = Path(template_root)
    service_dir = Path(service_dir)
    if not template_root.is_dir():
        raise ServiceForgeError(
            f"Template directory not found: {template_root}",
            "Check --template-dir or SVCFORGE_TEMPLATE_DIR.",
        )

    def _ignore(directory: str, names: list[str]) -> set[str]:
        if Path(directory) == template_root:
            return {name for name in names if name in exclude}
        return set()

    shutil.copytree(template_root, service_dir, ignore=_ignore, symlinks=True)
    return service_dir


# ---------------------------------------------------------------------------
# Repository initialisation and publishing
# ---------------------------------------------------------------------------


def commit_message(
    service: ServiceConfig,
    addons: AddonSelection,
    renderer: TemplateRenderer | None = None,
) -> str:
    renderer = renderer or TemplateRenderer()
    return renderer.render(
        COMMIT_MESSAGE_TEMPLATE,
        {"service": service, "addons": [addon.value for addon in addons.ordered()]},
    ).strip()


async def initialize_repository(
    service_dir: str | Path,
    service: ServiceConfig,
    addons: AddonSelection,
    renderer: TemplateRenderer | None = None,
    timeout: int = 300,
) -> None:
    """``git init``, stage everything and create the initial commit."""
    service_dir = Path(service_dir)
    message = commit_message(service, addons, renderer)

    await _run_tool(
        "git", "init", "--quiet",
        cwd=service_dir, timeout=timeout,
        remediation=f"cd {service_dir} && git init",
    )
    await _run_tool(
        "git", "add", ".",
        cwd=service_dir, timeout=timeout,
        remediation=f"cd {service_dir} && git add .",
    )
    await _run_tool(
        "git", "commit", "--quiet", "-m", message,
        cwd=service_dir, timeout=timeout,
        remediation=(
            f"cd {service_dir} && git commit -m 'Initial commit from template' "
            "(check that git user.name and user.email are configured)"
        ),
    )


def github_remediation(organization: str, name: str, private: bool = True) -> str:
    visibility = "--private" if private else "--public"
    return f"gh repo create {organization}/{name} {visibility} --source=. --remote=origin --push"


async def create_github_repository(
    service_dir: str | Path,
    organization: str,
    name: str,
    private: bool = True,
    timeout: int = 300,
) -> str:
    """Create ``<organization>/<name>`` on GitHub and push the initial commit.

    Returns:
        The repository URL.
    """
    command = github_remediation(organization, name, private)
    await _run_tool(
        *command.split(),
        cwd=service_dir,
        timeout=timeout,
        remediation=f"cd {service_dir} && {command}",
    )
    return f"https://github.com/{organization}/{name}"


# ---------------------------------------------------------------------------
# Build
# ---------------------------------------------------------------------------


async def run_build(service_dir: str | Path, timeout: int = 1800) -> None:
    """Run ``./gradlew clean build`` with output streamed to the terminal."""
    service_dir = Path(service_dir)
    await _run_tool(
        "./gradlew", "clean", "build",
        cwd=service_dir,
        timeout=timeout,
        capture=False,
        remediation=f"cd {service_dir} && ./gradlew clean build",
    )
