"""Discovery of per-add-on fragments.

Fragments live in a fixed directory of the template checkout, one
subdirectory per add-on::

    addons/
      postgresql-flyway/
        libs.versions.toml                       -> dependency-catalog
        build.gradle.kts.dependencies            -> build-descriptor
        application.yml                          -> runtime-config
        V1__initial_schema.sql                   -> migration-script
        Application.java.patch                   -> source-patch
      rabbitmq-spring-cloud/
        build.gradle.kts.dependencyManagement    -> dependency-management
        ...

The store only ever reads from this directory.
"""

from __future__ import annotations

from pathlib import Path

from ..errors import CompositionError
from ..models import AddonFragment, AddonId, FragmentKind

# Single-file fragments, in application order.
_FRAGMENT_FILES: tuple[tuple[FragmentKind, tuple[str, ...]], ...] = (
    (FragmentKind.DEPENDENCY_CATALOG, ("libs.versions.toml",)),
    (FragmentKind.DEPENDENCY_MANAGEMENT, ("build.gradle.kts.dependencyManagement",)),
    # ``build.gradle.kts`` is the legacy name of the dependencies fragment.
    (FragmentKind.BUILD_DESCRIPTOR, ("build.gradle.kts.dependencies", "build.gradle.kts")),
    (FragmentKind.RUNTIME_CONFIG, ("application.yml",)),
    (FragmentKind.SOURCE_PATCH, ("Application.java.patch",)),
)

MIGRATION_GLOB = "V*.sql"


class FragmentStore:
    """Read-only view over the add-on fragment directory."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def addon_dir(self, addon: AddonId) -> Path | None:
        """Directory holding *addon*'s fragments, or ``None`` if it has none."""
        if addon.fragment_dir is None:
            return None
        return self.root / addon.fragment_dir

    def fragments_for(self, addon: AddonId) -> list[AddonFragment]:
        """Return every fragment *addon* contributes.

        Code-driven add-ons (scheduling, testcontainers) have no directory
        and contribute no file fragments.

        Raises:
            CompositionError: if a directory-backed add-on's directory is
                missing from the store.
        """
        directory = self.addon_dir(addon)
        if directory is None:
            return []
        if not directory.is_dir():
            raise CompositionError(
                f"Fragment directory for add-on '{addon.value}' not found: {directory}",
                "Make sure the template checkout is complete and up to date.",
            )

        fragments: list[AddonFragment] = []
        for kind, candidates in _FRAGMENT_FILES:
            for filename in candidates:
                path = directory / filename
                if path.is_file():
                    fragments.append(AddonFragment(addon=addon, kind=kind, path=path))
                    break

        for path in sorted(directory.glob(MIGRATION_GLOB)):
            if path.is_file():
                fragments.append(
                    AddonFragment(addon=addon, kind=FragmentKind.MIGRATION_SCRIPT, path=path)
                )
        return fragments
