"""Unit tests for svcforge.validator."""

from __future__ import annotations

from pathlib import Path

import pytest

from svcforge.errors import ValidationError
from svcforge.models import AddonId, AddonSelection
from svcforge.validator import (
    PortRegistry,
    build_service_config,
    class_name_for,
    default_domain,
    validate_addons,
    validate_database_name,
    validate_domain_name,
    validate_port,
    validate_service_name,
    validate_version,
)

pytestmark = pytest.mark.unit


class TestServiceName:
    @pytest.mark.parametrize("name", ["currency-service", "budget-report-service", "a1-service"])
    def test_accepts_valid_names(self, name):
        assert validate_service_name(name) == name

    @pytest.mark.parametrize(
        "name",
        ["Foo-service", "foo", "", "1currency-service", "currency_service", "currency-svc"],
    )
    def test_rejects_invalid_names(self, name):
        with pytest.raises(ValidationError) as exc_info:
            validate_service_name(name)
        assert exc_info.value.field == "service name"


class TestDomain:
    def test_default_domain_is_first_word(self):
        assert default_domain("currency-service") == "currency"
        assert default_domain("budget-report-service") == "budget"

    def test_class_name_is_capitalized(self):
        assert class_name_for("currency") == "Currency"
        assert class_name_for("fx") == "Fx"

    def test_rejects_hyphens_and_uppercase(self):
        with pytest.raises(ValidationError):
            validate_domain_name("budget-report")
        with pytest.raises(ValidationError):
            validate_domain_name("Currency")


class TestPort:
    def test_accepts_unused_port(self):
        assert validate_port(8082) == 8082
        assert validate_port("8082", PortRegistry([8080])) == 8082

    @pytest.mark.parametrize("port", [80, 1023, 65536, 70000])
    def test_rejects_out_of_range(self, port):
        with pytest.raises(ValidationError) as exc_info:
            validate_port(port)
        assert exc_info.value.field == "port"

    @pytest.mark.parametrize("port", ["80a", "8²", "٣٠٨٤", ""])
    def test_rejects_non_numeric(self, port):
        with pytest.raises(ValidationError, match="not a number"):
            validate_port(port)

    def test_rejects_registered_port(self):
        with pytest.raises(ValidationError, match="already in use") as exc_info:
            validate_port(8082, PortRegistry([8082]))
        assert exc_info.value.remediation

    def test_bounds_are_inclusive(self):
        assert validate_port(1024) == 1024
        assert validate_port(65535) == 65535


class TestPortRegistry:
    def test_missing_compose_file_is_empty(self, tmp_path: Path):
        registry = PortRegistry.from_compose_file(tmp_path / "missing.yml")
        assert len(registry) == 0

    def test_reads_short_and_long_syntax(self, compose_file: Path):
        registry = PortRegistry.from_compose_file(compose_file)
        assert registry.ports() == [443, 5432, 8080, 8082, 10350, 10351, 10352, 15672]

    def test_container_only_port_is_not_registered(self, compose_file: Path):
        registry = PortRegistry.from_compose_file(compose_file)
        assert 5672 not in registry
        # 80 is the container side of "8080:80".
        assert 80 not in registry

    def test_malformed_yaml(self, tmp_path: Path):
        compose = tmp_path / "docker-compose.yml"
        compose.write_text("services: [unclosed\n", encoding="utf-8")
        with pytest.raises(ValidationError, match="not valid YAML") as exc_info:
            PortRegistry.from_compose_file(compose)
        assert exc_info.value.field == "port registry"
        assert str(compose) in exc_info.value.remediation

    @pytest.mark.parametrize("content", ["- just\n- a list\n", "services: 42\n"])
    def test_unexpected_structure(self, tmp_path: Path, content: str):
        compose = tmp_path / "docker-compose.yml"
        compose.write_text(content, encoding="utf-8")
        with pytest.raises(ValidationError, match="must contain a mapping|must be a mapping"):
            PortRegistry.from_compose_file(compose)

    def test_unusual_entries_are_ignored(self, tmp_path: Path):
        compose = tmp_path / "docker-compose.yml"
        compose.write_text(
            "services:\n  empty:\n  odd: text\n  api:\n    ports:\n      - \"8²:80\"\n      - \"9090:9090\"\n",
            encoding="utf-8",
        )
        assert PortRegistry.from_compose_file(compose).ports() == [9090]


class TestOtherFields:
    def test_database_name(self):
        assert validate_database_name("currency_db") == "currency_db"
        with pytest.raises(ValidationError):
            validate_database_name("currency-db")
        with pytest.raises(ValidationError):
            validate_database_name("")

    @pytest.mark.parametrize("version", ["0.0.1", "1.2.3-SNAPSHOT", "10.20.30"])
    def test_version_accepted(self, version):
        assert validate_version(version) == version

    @pytest.mark.parametrize("version", ["1.2", "1.2.3-snapshot", "v1.2.3", ""])
    def test_version_rejected(self, version):
        with pytest.raises(ValidationError):
            validate_version(version)


class TestAddons:
    def test_shedlock_requires_postgresql(self):
        with pytest.raises(ValidationError, match="ShedLock"):
            validate_addons(AddonSelection.of(AddonId.SHEDLOCK))

    def test_shedlock_fails_regardless_of_other_addons(self):
        others = [a for a in AddonId if a not in (AddonId.SHEDLOCK, AddonId.POSTGRESQL)]
        with pytest.raises(ValidationError):
            validate_addons(AddonSelection.of(AddonId.SHEDLOCK, *others))

    def test_shedlock_with_postgresql(self):
        selection = AddonSelection.of(AddonId.SHEDLOCK, AddonId.POSTGRESQL)
        assert validate_addons(selection) is selection


class TestBuildServiceConfig:
    def test_derives_domain_class_and_database(self):
        service = build_service_config(
            "currency-service", "8084", addons=AddonSelection.parse("postgresql")
        )
        assert service.domain == "currency"
        assert service.class_name == "Currency"
        assert service.port == 8084
        assert service.database_name == "currency"
        assert service.entry_point_path == (
            "src/main/java/org/budgetanalyzer/currency/CurrencyApplication.java"
        )

    def test_database_empty_without_postgresql(self):
        service = build_service_config("currency-service", 8084, database_name="ignored")
        assert service.database_name == ""

    def test_custom_domain_and_database(self):
        service = build_service_config(
            "budget-report-service",
            8090,
            domain="reporting",
            database_name="reports",
            addons=AddonSelection.parse("postgresql"),
        )
        assert service.package_name == "org.budgetanalyzer.reporting"
        assert service.database_name == "reports"

    def test_first_failing_field_is_reported(self):
        with pytest.raises(ValidationError) as exc_info:
            build_service_config("Foo-service", 80)
        assert exc_info.value.field == "service name"

    def test_port_registry_is_consulted(self):
        with pytest.raises(ValidationError) as exc_info:
            build_service_config("currency-service", 8082, registry=PortRegistry([8082]))
        assert exc_info.value.field == "port"

    def test_addon_check_precedes_field_checks(self):
        with pytest.raises(ValidationError) as exc_info:
            build_service_config("foo", 80, addons=AddonSelection.parse("shedlock"))
        assert exc_info.value.field == "add-ons"

    def test_placeholders_cover_every_token(self):
        service = build_service_config("currency-service", 8084)
        assert service.placeholders() == {
            "{SERVICE_NAME}": "currency-service",
            "{DOMAIN_NAME}": "currency",
            "{ServiceClassName}": "Currency",
            "{SERVICE_PORT}": "8084",
            "{DATABASE_NAME}": "",
            "{SERVICE_COMMON_VERSION}": "0.0.1-SNAPSHOT",
            "{JAVA_VERSION}": "24",
        }
