"""Main composition orchestrator.

Takes a cloned template tree, a validated ``ServiceConfig`` and an add-on
selection, and turns the tree into a finished service:

1. validate the add-on selection
2. substitute placeholder tokens in file contents and paths
3. merge add-on fragments into the shared files
4. synthesize the smoke test (TestContainers add-on only)

Each step is recorded in a ``CompositionReport``.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from ..errors import CompositionError
from ..models import AddonId, AddonSelection, CompositionReport, ServiceConfig, StepResult
from ..validator import validate_addons
from .fragments import FragmentStore
from .merger import FragmentMerger
from .placeholders import remaining_tokens, substitute_tree
from .smoke_test import smoke_test_path, synthesize_smoke_test
from .templates import TemplateRenderer
from .tree import ProjectTree


class ServiceComposer:
    """Composes a service project tree from a template and add-on fragments.

    The composer mutates the tree in place and owns it for the duration of
    :meth:`compose`; nothing else may write to the tree concurrently.
    """

    def __init__(
        self,
        fragments_dir: str | Path,
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self.renderer = renderer or TemplateRenderer()
        self.store = FragmentStore(fragments_dir)
        self.merger = FragmentMerger(self.store, self.renderer)

    # -- Public API --------------------------------------------------------

    async def compose(
        self,
        project_root: str | Path,
        service: ServiceConfig,
        addons: AddonSelection,
    ) -> CompositionReport:
        """Compose the tree at *project_root*.

        Returns:
            The report of every step, all successful.

        Raises:
            CompositionError: on the first failing step.  The partial report
                (with the failing step recorded) is attached as ``.report``.
            ValidationError: if the add-on selection is inconsistent; raised
                before the tree is touched.
        """
        validate_addons(addons)
        tree = ProjectTree(project_root)
        report = CompositionReport(service=service.name, addons=addons.ordered())

        await self._run_step(report, "placeholders", self._substitute, tree, service)
        await self._run_step(report, "addons", self._merge, tree, service, addons)
        if AddonId.TESTCONTAINERS in addons:
            await self._run_step(report, "smoke-test", self._smoke_test, tree, service, addons)

        return report

    # -- Steps -------------------------------------------------------------

    async def _run_step(self, report: CompositionReport, name: str, func, *args) -> None:
        try:
            steps = await asyncio.to_thread(func, *args)
        except CompositionError as exc:
            report.add(StepResult(name=name, success=False, detail=str(exc)))
            exc.report = report
            raise
        for step in steps:
            report.add(step)

    def _substitute(self, tree: ProjectTree, service: ServiceConfig) -> list[StepResult]:
        mapping = service.placeholders()
        touched = substitute_tree(tree, mapping)
        leftovers = remaining_tokens(tree, mapping)
        if leftovers:
            listing = ", ".join(
                f"{path} ({', '.join(tokens)})" for path, tokens in leftovers.items()
            )
            raise CompositionError(f"Placeholders left unresolved: {listing}")
        return [StepResult(
            name="placeholders",
            detail=f"Substituted {len(mapping)} placeholder(s) in {len(touched)} file(s)",
            files=touched,
        )]

    def _merge(
        self,
        tree: ProjectTree,
        service: ServiceConfig,
        addons: AddonSelection,
    ) -> list[StepResult]:
        return self.merger.merge(tree, service, addons)

    def _smoke_test(
        self,
        tree: ProjectTree,
        service: ServiceConfig,
        addons: AddonSelection,
    ) -> list[StepResult]:
        relative = smoke_test_path(service)
        tree.write(relative, synthesize_smoke_test(service, addons, self.renderer))
        containers = [addon.value for addon in addons.infrastructure()]
        step = StepResult(
            name="smoke-test",
            detail=(
                "Generated ApplicationSmokeTest with containers: "
                f"{', '.join(containers) or 'none'}"
            ),
            files=[relative],
        )
        if not containers:
            step.notes.append(
                "No infrastructure add-ons selected. Created basic smoke test without containers."
            )
        return [step]
