"""Exception hierarchy for the service composer.

Every error carries a human-readable message and, where one exists, a
``remediation`` command or hint that the CLI prints underneath it.
"""

from __future__ import annotations

from typing import Any


class ServiceForgeError(Exception):
    """Base class for every error raised by svcforge."""

    def __init__(self, message: str, remediation: str = "") -> None:
        self.remediation = remediation
        super().__init__(message)


class ValidationError(ServiceForgeError):
    """Raised when user input fails validation.

    Always raised before any filesystem mutation takes place.
    """

    def __init__(self, field: str, reason: str, remediation: str = "") -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}", remediation)


class MissingDependencyError(ServiceForgeError):
    """Raised when a required external tool is not installed."""

    def __init__(self, tools: list[str], hints: dict[str, str] | None = None) -> None:
        self.tools = list(tools)
        self.hints = dict(hints or {})
        remediation = "\n".join(
            f"{tool}: {self.hints[tool]}" for tool in self.tools if tool in self.hints
        )
        super().__init__(
            f"Missing required tools: {', '.join(self.tools)}",
            remediation or "Please install the missing tools and try again.",
        )


class CompositionError(ServiceForgeError):
    """Raised when the project tree cannot be composed.

    ``report`` holds the partial :class:`~svcforge.models.CompositionReport`
    when the failure happened inside :class:`ServiceComposer`.
    """

    def __init__(self, message: str, remediation: str = "", report: Any = None) -> None:
        self.report = report
        super().__init__(message, remediation)


class MissingInsertionPointError(CompositionError):
    """Raised when an anchor line cannot be found in a target file."""

    def __init__(self, anchor: str, path: str, addon: str = "") -> None:
        self.anchor = anchor
        self.path = path
        self.addon = addon
        prefix = f"[{addon}] " if addon else ""
        super().__init__(
            f"{prefix}Missing insertion point {anchor!r} in {path}",
            "Check that the template matches this version of svcforge.",
        )


class FragmentCollisionError(CompositionError):
    """Raised when two add-ons contribute a migration with the same filename."""

    def __init__(self, filename: str, addons: list[str]) -> None:
        self.filename = filename
        self.addons = list(addons)
        super().__init__(
            f"Migration {filename} is provided by more than one source: "
            f"{', '.join(self.addons)}",
            "Rename one of the migration fragments so that versions are unique.",
        )


class ExternalToolError(ServiceForgeError):
    """Raised when git, gh or gradle exits with a non-zero status."""

    def __init__(
        self,
        command: str,
        exit_code: int,
        stderr: str = "",
        remediation: str = "",
    ) -> None:
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        message = f"Command failed (exit {exit_code}): {command}"
        if stderr:
            message = f"{message}\n{stderr}"
        super().__init__(message, remediation)
