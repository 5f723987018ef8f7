"""svcforge composer -- turns a cloned template into a finished service.

Quick usage::

    from svcforge.composer import ServiceComposer
    from svcforge.models import AddonSelection
    from svcforge.validator import build_service_config

    addons = AddonSelection.parse("web,postgresql")
    service = build_service_config("currency-service", 8084, addons=addons)
    composer = ServiceComposer("/tmp/template/addons")
    report = await composer.compose("/tmp/currency-service", service, addons)
"""

from svcforge.composer.fragments import FragmentStore
from svcforge.composer.generator import ServiceComposer
from svcforge.composer.merger import FragmentMerger
from svcforge.composer.smoke_test import synthesize_smoke_test
from svcforge.composer.templates import TemplateRenderer
from svcforge.composer.tree import ProjectTree

__all__ = [
    "FragmentMerger",
    "FragmentStore",
    "ProjectTree",
    "ServiceComposer",
    "TemplateRenderer",
    "synthesize_smoke_test",
]
