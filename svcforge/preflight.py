"""Prerequisite checks for service creation.

``git`` and ``java`` are required; ``gh`` is optional and only gates the
GitHub integration.  Version strings are read for display only.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .errors import MissingDependencyError
from .utils import print_section, print_success, print_warning, run_command, which

INSTALL_HINTS: dict[str, str] = {
    "git": "sudo apt-get install -y git",
    "java": "Install a JDK (e.g. sdk install java 24-tem)",
    "gh": "See https://cli.github.com/ then run 'gh auth login'",
}

REQUIRED_TOOLS: tuple[str, ...] = ("git", "java")
OPTIONAL_TOOLS: tuple[str, ...] = ("gh",)


@dataclass
class PrerequisiteReport:
    """Which tools were found, with their version banners."""

    found: dict[str, str] = field(default_factory=dict)
    missing_optional: list[str] = field(default_factory=list)


async def _tool_version(tool: str) -> str:
    # java prints its version banner on stderr.
    args = ["java", "-version"] if tool == "java" else [tool, "--version"]
    code, stdout, stderr = await run_command(args, timeout=30)
    if code != 0:
        return "unknown version"
    banner = (stdout or stderr).splitlines()
    return banner[0].strip() if banner else "unknown version"


async def check_prerequisites(
    required: tuple[str, ...] = REQUIRED_TOOLS,
    optional: tuple[str, ...] = OPTIONAL_TOOLS,
) -> PrerequisiteReport:
    """Verify that the external tools needed for service creation exist.

    Raises:
        MissingDependencyError: listing every missing required tool.
    """
    print_section("Checking Prerequisites")
    report = PrerequisiteReport()
    missing: list[str] = []

    for tool in required:
        if which(tool) is None:
            missing.append(tool)
            continue
        report.found[tool] = await _tool_version(tool)
        print_success(f"{tool} found: {report.found[tool]}")

    for tool in optional:
        if which(tool) is None:
            report.missing_optional.append(tool)
            print_warning(f"{tool} not found (GitHub integration will be disabled)")
            continue
        report.found[tool] = await _tool_version(tool)
        print_success(f"{tool} found: {report.found[tool]}")

    if missing:
        raise MissingDependencyError(
            missing, {tool: INSTALL_HINTS[tool] for tool in missing if tool in INSTALL_HINTS}
        )
    return report


async def github_available() -> bool:
    """``True`` when ``gh`` is installed and authenticated."""
    if which("gh") is None:
        return False
    code, _, _ = await run_command(["gh", "auth", "status"], timeout=30)
    return code == 0
