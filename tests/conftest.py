"""Shared pytest fixtures for the svcforge test suite.

Provides reusable fixtures for:
- A template checkout (project files plus the ``addons/`` fragment directory)
- A materialized project tree ready for composition
- Validated service configurations
- Mock subprocess helpers
"""

from __future__ import annotations

import shutil
import textwrap
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from svcforge.models import AddonSelection, ServiceConfig
from svcforge.validator import build_service_config


def _write(root: Path, relative: str, content: str) -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(content).lstrip("\n"), encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Template project files
# ---------------------------------------------------------------------------

BUILD_GRADLE = """
plugins {
    java
    alias(libs.plugins.spring.boot)
    alias(libs.plugins.spring.dependency.management)
}

group = "org.budgetanalyzer"
version = "0.0.1-SNAPSHOT"

java {
    toolchain {
        languageVersion = JavaLanguageVersion.of({JAVA_VERSION})
    }
}

dependencies {
    implementation(libs.service.core)
    implementation(libs.spring.boot.starter.actuator)

    testImplementation(libs.spring.boot.starter.test)
    testRuntimeOnly(libs.junit.platform.launcher)
}
"""

LIBS_VERSIONS = """
[versions]
springBoot = "3.5.0"
serviceCommon = "{SERVICE_COMMON_VERSION}"

[libraries]
service-core = { module = "org.budgetanalyzer:service-core", version.ref = "serviceCommon" }
spring-boot-starter-actuator = { module = "org.springframework.boot:spring-boot-starter-actuator" }
spring-boot-starter-test = { module = "org.springframework.boot:spring-boot-starter-test" }
junit-platform-launcher = { module = "org.junit.platform:junit-platform-launcher" }
"""

APPLICATION_YML = """
spring:
  application:
    name: {SERVICE_NAME}

server:
  port: {SERVICE_PORT}
"""

APPLICATION_JAVA = """
package org.budgetanalyzer.{DOMAIN_NAME};

import org.springframework.boot.SpringApplication;
import org.springframework.boot.autoconfigure.SpringBootApplication;
import org.springframework.boot.autoconfigure.jdbc.DataSourceAutoConfiguration;
import org.springframework.boot.autoconfigure.orm.jpa.HibernateJpaAutoConfiguration;

@SpringBootApplication(exclude = {DataSourceAutoConfiguration.class, HibernateJpaAutoConfiguration.class})
public class {ServiceClassName}Application {

    public static void main(String[] args) {
        SpringApplication.run({ServiceClassName}Application.class, args);
    }
}
"""

README = """
# {SERVICE_NAME}

The {ServiceClassName} service listens on port {SERVICE_PORT}.
"""


def _write_template_project(root: Path) -> None:
    _write(root, "build.gradle.kts", BUILD_GRADLE)
    _write(root, "settings.gradle.kts", 'rootProject.name = "{SERVICE_NAME}"\n')
    _write(root, "gradle/libs.versions.toml", LIBS_VERSIONS)
    _write(root, "src/main/resources/application.yml", APPLICATION_YML)
    _write(
        root,
        "src/main/java/org/budgetanalyzer/{DOMAIN_NAME}/{ServiceClassName}Application.java",
        APPLICATION_JAVA,
    )
    _write(root, "src/test/java/org/budgetanalyzer/{DOMAIN_NAME}/.gitkeep", "")
    _write(root, "README.md", README)
    wrapper = root / "gradle" / "wrapper" / "gradle-wrapper.jar"
    wrapper.parent.mkdir(parents=True, exist_ok=True)
    wrapper.write_bytes(b"PK\x03\x04\x00\x00{SERVICE_NAME}\x00binary")


# ---------------------------------------------------------------------------
# Add-on fragments
# ---------------------------------------------------------------------------


def _write_addons(addons: Path) -> None:
    _write(addons, "spring-boot-web/libs.versions.toml", """
        service-web = { module = "org.budgetanalyzer:service-web", version.ref = "serviceCommon" }
    """)

    _write(addons, "postgresql-flyway/libs.versions.toml", """
        # PostgreSQL + Flyway
        postgresql = { module = "org.postgresql:postgresql" }
        flyway-core = { module = "org.flywaydb:flyway-core" }
    """)
    _write(addons, "postgresql-flyway/build.gradle.kts.dependencies", """
            // PostgreSQL + Flyway
            implementation(libs.spring.boot.starter.data.jpa)
            implementation(libs.flyway.core)
            runtimeOnly(libs.postgresql)
    """)
    _write(addons, "postgresql-flyway/application.yml", """
        ---
        spring:
          datasource:
            url: jdbc:postgresql://localhost:5432/{DATABASE_NAME}
          flyway:
            enabled: true
    """)
    _write(addons, "postgresql-flyway/V1__initial_schema.sql", """
        -- Initial schema for {SERVICE_NAME} in database {DATABASE_NAME}
        CREATE TABLE IF NOT EXISTS example (id BIGSERIAL PRIMARY KEY);
    """)
    _write(addons, "postgresql-flyway/Application.java.patch", """
        Remove the DataSource/Hibernate auto-configuration exclusion.
    """)

    _write(addons, "redis/libs.versions.toml", """
        # Redis
        spring-boot-starter-data-redis = { module = "org.springframework.boot:spring-boot-starter-data-redis" }
    """)
    _write(addons, "redis/build.gradle.kts.dependencies", """
            // Redis
            implementation(libs.spring.boot.starter.data.redis)
    """)
    _write(addons, "redis/application.yml", """
        ---
        spring:
          data:
            redis:
              host: localhost
    """)

    _write(addons, "rabbitmq-spring-cloud/libs.versions.toml", """
        # RabbitMQ
        spring-cloud-stream-binder-rabbit = { module = "org.springframework.cloud:spring-cloud-stream-binder-rabbit" }
    """)
    _write(addons, "rabbitmq-spring-cloud/build.gradle.kts.dependencyManagement", """
        dependencyManagement {
            imports {
                mavenBom("org.springframework.cloud:spring-cloud-dependencies:2025.0.0")
            }
        }

    """)
    _write(addons, "rabbitmq-spring-cloud/build.gradle.kts.dependencies", """
            // RabbitMQ
            implementation(libs.spring.cloud.stream.binder.rabbit)
    """)
    _write(addons, "rabbitmq-spring-cloud/application.yml", """
        ---
        spring:
          cloud:
            stream:
              bindings:
                output:
                  destination: {SERVICE_NAME}-events
    """)

    _write(addons, "webflux/build.gradle.kts.dependencies", """
            implementation(libs.spring.boot.starter.webflux)
    """)
    _write(addons, "shedlock/libs.versions.toml", """
        shedlock-spring = { module = "net.javacrumbs.shedlock:shedlock-spring", version = "5.16.0" }
    """)
    _write(addons, "shedlock/build.gradle.kts.dependencies", """
            implementation(libs.shedlock.spring)
    """)
    _write(addons, "shedlock/V2__create_shedlock_table.sql", """
        CREATE TABLE shedlock (name VARCHAR(64) PRIMARY KEY);
    """)
    _write(addons, "springdoc/build.gradle.kts", """
            implementation(libs.springdoc.openapi.starter.webmvc.ui)
    """)
    _write(addons, "spring-security/build.gradle.kts.dependencies", """
            implementation(libs.spring.boot.starter.security)
    """)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def template_checkout(tmp_path: Path) -> Path:
    """A template repository checkout with project files and ``addons/``."""
    root = tmp_path / "spring-boot-service-template"
    _write_template_project(root)
    _write_addons(root / "addons")
    (root / ".git").mkdir()
    (root / ".git" / "HEAD").write_text("ref: refs/heads/main\n", encoding="utf-8")
    yield root


@pytest.fixture
def addons_dir(template_checkout: Path) -> Path:
    """The fragment directory of the template checkout."""
    return template_checkout / "addons"


@pytest.fixture
def project_dir(tmp_path: Path, template_checkout: Path) -> Path:
    """A project tree materialized from the template, without fragments or .git."""
    project = tmp_path / "currency-service"
    shutil.copytree(
        template_checkout,
        project,
        ignore=lambda directory, names: (
            {"addons", ".git"} if Path(directory) == template_checkout else set()
        ),
    )
    yield project


@pytest.fixture
def make_service():
    """Factory building a validated ``ServiceConfig``.

    Usage:
        def test_something(make_service):
            service = make_service("web,postgresql")
    """
    def factory(
        addons: str = "",
        name: str = "currency-service",
        port: int = 8084,
        **kwargs,
    ) -> tuple[ServiceConfig, AddonSelection]:
        selection = AddonSelection.parse(addons)
        service = build_service_config(name, port, addons=selection, **kwargs)
        return service, selection

    return factory


@pytest.fixture
def compose_file(tmp_path: Path) -> Path:
    """A docker-compose file claiming a handful of host ports."""
    return _write(tmp_path, "orchestration/docker-compose.yml", """
        services:
          nginx:
            ports:
              - "443:443"
              - "8080:80"
          transaction-service:
            ports:
              - "8082:8082"
          postgres:
            ports:
              - target: 5432
                published: 5432
          rabbitmq:
            ports:
              - "127.0.0.1:15672:15672"
              - "5672"
          tilt:
            ports:
              - "10350-10352:10350-10352/tcp"
    """)


# ---------------------------------------------------------------------------
# Subprocess mocking
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_subprocess():
    """Mock asyncio subprocess for testing command execution.

    Returns a factory that creates mock subprocess instances with configurable
    stdout, stderr, and return codes.

    Usage:
        def test_command(mock_subprocess):
            proc = mock_subprocess(stdout="output", returncode=0)
            with patch("asyncio.create_subprocess_exec", return_value=proc):
                ...
    """
    def factory(
        stdout: str = "",
        stderr: str = "",
        returncode: int = 0,
    ) -> AsyncMock:
        mock_proc = AsyncMock()
        mock_proc.communicate = AsyncMock(
            return_value=(stdout.encode("utf-8"), stderr.encode("utf-8"))
        )
        mock_proc.returncode = returncode
        mock_proc.pid = 99999
        mock_proc.kill = MagicMock()
        mock_proc.wait = AsyncMock(return_value=returncode)
        return mock_proc

    return factory
