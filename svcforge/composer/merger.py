"""Merging of add-on fragments into the shared project files.

Add-ons are applied in declaration order (see :class:`~svcforge.models.AddonId`),
never in the order the user picked them.  Every edit is staged on the
:class:`~svcforge.composer.tree.ProjectTree` and only committed once all
enabled add-ons merged cleanly; any :class:`CompositionError` discards the
stage so no file is left half-merged.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..errors import CompositionError, FragmentCollisionError, MissingInsertionPointError
from ..models import (
    AddonFragment,
    AddonId,
    AddonSelection,
    FragmentKind,
    ServiceConfig,
    StepResult,
)
from .fragments import FragmentStore
from .placeholders import substitute_text
from .templates import TemplateRenderer
from .tree import ProjectTree


# ---------------------------------------------------------------------------
# Target files
# ---------------------------------------------------------------------------

CATALOG_PATH = "gradle/libs.versions.toml"
BUILD_DESCRIPTOR_PATH = "build.gradle.kts"
RUNTIME_CONFIG_PATH = "src/main/resources/application.yml"
MIGRATIONS_DIR = "src/main/resources/db/migration"

TESTCONTAINERS_VERSION = "1.19.3"

# Catalog / build-descriptor tokens swapped by the web add-on.
CORE_LIBRARY_TOKEN = "service-core"
WEB_LIBRARY_TOKEN = "service-web"
CORE_ACCESSOR_TOKEN = "service.core"
WEB_ACCESSOR_TOKEN = "service.web"


# ---------------------------------------------------------------------------
# Insertion points
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class InsertionPoint:
    """A documented marker line that locates where a fragment goes.

    ``match`` is one of ``"contains"``, ``"exact"`` (the whole right-stripped
    line) or ``"prefix"`` (the left-stripped line starts with the marker).
    ``after`` selects whether fragments go after or before the marker line.
    The first matching line wins.
    """

    name: str
    marker: str
    match: str = "contains"
    after: bool = True

    def matches(self, line: str) -> bool:
        text = line.rstrip()
        if self.match == "exact":
            return text == self.marker
        if self.match == "prefix":
            return text.lstrip().startswith(self.marker)
        return self.marker in text

    def locate(self, lines: list[str], path: str, addon: str = "") -> int:
        for index, line in enumerate(lines):
            if self.matches(line):
                return index
        raise MissingInsertionPointError(self.marker, path, addon)

    def insert(self, text: str, block: str, path: str, addon: str = "") -> str:
        """Return *text* with *block* inserted at this insertion point."""
        lines = text.splitlines(keepends=True)
        index = self.locate(lines, path, addon)
        if not block.endswith("\n"):
            block += "\n"
        if self.after:
            if not lines[index].endswith("\n"):
                lines[index] += "\n"
            index += 1
        lines.insert(index, block)
        return "".join(lines)


DEPENDENCIES_ANCHOR = InsertionPoint(
    name="dependencies",
    marker="testRuntimeOnly(libs.junit.platform.launcher)",
)
DEPENDENCY_MANAGEMENT_ANCHOR = InsertionPoint(
    name="dependency-management",
    marker="dependencies {",
    match="exact",
    after=False,
)
PACKAGE_ANCHOR = InsertionPoint(name="package", marker="package ", match="prefix")
APPLICATION_ANNOTATION_ANCHOR = InsertionPoint(
    name="application-annotation",
    marker="@SpringBootApplication",
    match="prefix",
    after=False,
)

_DATASOURCE_EXCLUSION_RE = re.compile(
    r"@SpringBootApplication\(\s*exclude\s*=\s*\{\s*"
    r"DataSourceAutoConfiguration\.class\s*,\s*"
    r"HibernateJpaAutoConfiguration\.class\s*\}\s*\)"
)
_DATASOURCE_IMPORTS: tuple[str, ...] = (
    "import org.springframework.boot.autoconfigure.jdbc.DataSourceAutoConfiguration;",
    "import org.springframework.boot.autoconfigure.orm.jpa.HibernateJpaAutoConfiguration;",
)
_SCHEDULING_IMPORT = "import org.springframework.scheduling.annotation.EnableScheduling;"
_SCHEDULING_ANNOTATION = "@EnableScheduling"

_CATALOG_ENTRY_RE = re.compile(r"^\s*([A-Za-z0-9_.-]+)\s*=")
_CATALOG_SECTION_RE = re.compile(r"^\s*\[([^\]]+)\]\s*$")

# Follow-up hints printed after composition.
_ADDON_NOTES: dict[AddonId, str] = {
    AddonId.POSTGRESQL: (
        "Database '{database}' needs to be created manually. Run: createdb {database}"
    ),
    AddonId.RABBITMQ: "Configure your event bindings in application.yml",
    AddonId.WEBFLUX: "Create WebClientConfig class manually for HTTP client setup",
    AddonId.SHEDLOCK: "Create SchedulingConfig class manually with @EnableSchedulerLock",
    AddonId.SPRINGDOC: (
        "Swagger UI will be available at: http://localhost:{port}/{name}/swagger-ui.html"
    ),
    AddonId.SECURITY: "Create SecurityConfig class manually to configure authentication",
}


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

def append_block(text: str, block: str) -> str:
    """Append *block* to *text*, keeping both newline-terminated."""
    if text and not text.endswith("\n"):
        text += "\n"
    if block and not block.endswith("\n"):
        block += "\n"
    return text + block


def dedupe_catalog(text: str) -> str:
    """Drop repeated library keys within each section of a version catalog."""
    seen: set[tuple[str, str]] = set()
    section = ""
    kept: list[str] = []
    for line in text.splitlines(keepends=True):
        header = _CATALOG_SECTION_RE.match(line)
        if header:
            section = header.group(1).strip()
        else:
            entry = _CATALOG_ENTRY_RE.match(line)
            if entry:
                key = (section, entry.group(1))
                if key in seen:
                    continue
                seen.add(key)
        kept.append(line)
    return "".join(kept)


def dedupe_lines_containing(text: str, token: str) -> str:
    """Drop exact repeats of lines that mention *token*."""
    seen: set[str] = set()
    kept: list[str] = []
    for line in text.splitlines(keepends=True):
        stripped = line.strip()
        if token in stripped:
            if stripped in seen:
                continue
            seen.add(stripped)
        kept.append(line)
    return "".join(kept)


def remove_datasource_exclusion(source: str, path: str, addon: str = "") -> str:
    """Strip the persistence auto-configuration exclusion from an entry point."""
    updated, count = _DATASOURCE_EXCLUSION_RE.subn("@SpringBootApplication", source, count=1)
    if count == 0:
        raise MissingInsertionPointError(
            "@SpringBootApplication(exclude = {DataSourceAutoConfiguration.class, "
            "HibernateJpaAutoConfiguration.class})",
            path,
            addon,
        )
    lines = [
        line for line in updated.splitlines(keepends=True)
        if line.strip() not in _DATASOURCE_IMPORTS
    ]
    return "".join(lines)


def enable_scheduling(source: str, path: str, addon: str = "") -> str:
    """Add ``@EnableScheduling`` and its import to an entry point."""
    if _SCHEDULING_ANNOTATION in source.split():
        return source
    with_import = PACKAGE_ANCHOR.insert(source, _SCHEDULING_IMPORT, path, addon)
    return APPLICATION_ANNOTATION_ANCHOR.insert(
        with_import, _SCHEDULING_ANNOTATION, path, addon
    )


# ---------------------------------------------------------------------------
# FragmentMerger
# ---------------------------------------------------------------------------


class FragmentMerger:
    """Applies the fragments of every enabled add-on to a project tree."""

    def __init__(
        self,
        store: FragmentStore,
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self.store = store
        self.renderer = renderer or TemplateRenderer()

    def merge(
        self,
        tree: ProjectTree,
        service: ServiceConfig,
        addons: AddonSelection,
    ) -> list[StepResult]:
        """Merge all enabled add-ons, all-or-nothing.

        Returns:
            One ``StepResult`` per applied add-on, in application order.

        Raises:
            CompositionError: on the first add-on that cannot be merged.
                The tree's stage is discarded before the error propagates.
        """
        run = _MergeRun(self, tree, service, addons)
        try:
            results = [run.apply(addon) for addon in addons.ordered()]
        except CompositionError:
            tree.discard()
            raise
        tree.commit()
        return results


class _MergeRun:
    """State for one merge invocation."""

    def __init__(
        self,
        merger: FragmentMerger,
        tree: ProjectTree,
        service: ServiceConfig,
        addons: AddonSelection,
    ) -> None:
        self.store = merger.store
        self.renderer = merger.renderer
        self.tree = tree
        self.service = service
        self.addons = addons
        self.migration_owners: dict[str, str] = {}
        self.entry_point_patched = False

    # -- Dispatch ------------------------------------------------------------

    def apply(self, addon: AddonId) -> StepResult:
        result = StepResult(name=f"addon:{addon.value}")
        touched: set[str] = set()

        if addon is AddonId.WEB:
            touched.update(self._apply_web_rename())

        for fragment in self.store.fragments_for(addon):
            touched.update(self._apply_fragment(fragment))

        if addon is AddonId.SCHEDULING:
            touched.add(self._apply_scheduling())
        elif addon is AddonId.TESTCONTAINERS:
            touched.update(self._apply_testcontainers())

        note = _ADDON_NOTES.get(addon)
        if note:
            result.notes.append(note.format(
                database=self.service.database_name,
                port=self.service.port,
                name=self.service.name,
            ))
        result.files = sorted(touched)
        result.detail = f"{addon.label}: {len(result.files)} file(s)"
        return result

    def _apply_fragment(self, fragment: AddonFragment) -> list[str]:
        kind = fragment.kind
        if kind is FragmentKind.DEPENDENCY_CATALOG:
            if fragment.addon is AddonId.WEB:
                return []
            return [self._append(CATALOG_PATH, fragment.read(), fragment)]
        if kind is FragmentKind.DEPENDENCY_MANAGEMENT:
            return [self._insert(
                BUILD_DESCRIPTOR_PATH, DEPENDENCY_MANAGEMENT_ANCHOR, fragment.read(), fragment
            )]
        if kind is FragmentKind.BUILD_DESCRIPTOR:
            return [self._insert(
                BUILD_DESCRIPTOR_PATH, DEPENDENCIES_ANCHOR, fragment.read(), fragment
            )]
        if kind is FragmentKind.RUNTIME_CONFIG:
            content = substitute_text(fragment.read(), self._runtime_tokens())
            return [self._append(RUNTIME_CONFIG_PATH, content, fragment)]
        if kind is FragmentKind.MIGRATION_SCRIPT:
            return [self._copy_migration(fragment)]
        if kind is FragmentKind.SOURCE_PATCH:
            return self._apply_source_patch(fragment)
        raise CompositionError(f"Unsupported fragment kind: {kind.value}")

    # -- Fragment kinds ------------------------------------------------------

    def _runtime_tokens(self) -> dict[str, str]:
        return {
            "{SERVICE_NAME}": self.service.name,
            "{DATABASE_NAME}": self.service.database_name,
            "{SERVICE_PORT}": str(self.service.port),
        }

    def _migration_tokens(self) -> dict[str, str]:
        return {
            "{SERVICE_NAME}": self.service.name,
            "{DATABASE_NAME}": self.service.database_name,
        }

    def _read_target(self, relative: str, addon: AddonId) -> str:
        if not self.tree.exists(relative):
            raise CompositionError(
                f"[{addon.value}] Target file not found: {relative}",
                "The cloned template is missing a required file.",
            )
        return self.tree.read(relative)

    def _append(self, relative: str, block: str, fragment: AddonFragment) -> str:
        current = self._read_target(relative, fragment.addon)
        self.tree.stage(relative, append_block(current, block))
        return relative

    def _insert(
        self,
        relative: str,
        point: InsertionPoint,
        block: str,
        fragment: AddonFragment,
    ) -> str:
        current = self._read_target(relative, fragment.addon)
        self.tree.stage(relative, point.insert(current, block, relative, fragment.addon.value))
        return relative

    def _copy_migration(self, fragment: AddonFragment) -> str:
        filename = fragment.filename
        relative = f"{MIGRATIONS_DIR}/{filename}"
        owner = self.migration_owners.get(filename)
        if owner is not None:
            raise FragmentCollisionError(filename, [owner, fragment.addon.value])
        if self.tree.exists(relative):
            raise FragmentCollisionError(filename, ["template", fragment.addon.value])
        self.migration_owners[filename] = fragment.addon.value
        self.tree.stage(relative, substitute_text(fragment.read(), self._migration_tokens()))
        return relative

    def _apply_source_patch(self, fragment: AddonFragment) -> list[str]:
        if self.entry_point_patched:
            return []
        relative = self.service.entry_point_path
        source = self._entry_point(fragment.addon)
        self.tree.stage(
            relative, remove_datasource_exclusion(source, relative, fragment.addon.value)
        )
        self.entry_point_patched = True
        return [relative]

    def _entry_point(self, addon: AddonId) -> str:
        relative = self.service.entry_point_path
        if not self.tree.exists(relative):
            raise CompositionError(
                f"[{addon.value}] Application class not found at: {relative}",
                "Placeholder substitution must run before add-ons are merged.",
            )
        return self.tree.read(relative)

    # -- Code-driven add-ons -------------------------------------------------

    def _apply_web_rename(self) -> list[str]:
        catalog = self._read_target(CATALOG_PATH, AddonId.WEB)
        build = self._read_target(BUILD_DESCRIPTOR_PATH, AddonId.WEB)
        if CORE_LIBRARY_TOKEN not in catalog and WEB_LIBRARY_TOKEN not in catalog:
            raise MissingInsertionPointError(CORE_LIBRARY_TOKEN, CATALOG_PATH, AddonId.WEB.value)

        catalog = dedupe_catalog(catalog.replace(CORE_LIBRARY_TOKEN, WEB_LIBRARY_TOKEN))
        build = dedupe_lines_containing(
            build.replace(CORE_ACCESSOR_TOKEN, WEB_ACCESSOR_TOKEN), WEB_ACCESSOR_TOKEN
        )
        self.tree.stage(CATALOG_PATH, catalog)
        self.tree.stage(BUILD_DESCRIPTOR_PATH, build)
        return [CATALOG_PATH, BUILD_DESCRIPTOR_PATH]

    def _apply_scheduling(self) -> str:
        relative = self.service.entry_point_path
        source = self._entry_point(AddonId.SCHEDULING)
        self.tree.stage(relative, enable_scheduling(source, relative, AddonId.SCHEDULING.value))
        return relative

    def _apply_testcontainers(self) -> list[str]:
        context = {
            "testcontainers_version": TESTCONTAINERS_VERSION,
            "addons": [addon.value for addon in self.addons.ordered()],
        }
        catalog_block = self.renderer.render(
            "gradle/testcontainers.libs.versions.toml.j2", context
        )
        build_block = self.renderer.render(
            "gradle/testcontainers.build.gradle.kts.j2", context
        )

        catalog = self._read_target(CATALOG_PATH, AddonId.TESTCONTAINERS)
        self.tree.stage(CATALOG_PATH, dedupe_catalog(append_block(catalog, catalog_block)))

        build = self._read_target(BUILD_DESCRIPTOR_PATH, AddonId.TESTCONTAINERS)
        self.tree.stage(
            BUILD_DESCRIPTOR_PATH,
            DEPENDENCIES_ANCHOR.insert(
                build, build_block, BUILD_DESCRIPTOR_PATH, AddonId.TESTCONTAINERS.value
            ),
        )
        return [CATALOG_PATH, BUILD_DESCRIPTOR_PATH]
