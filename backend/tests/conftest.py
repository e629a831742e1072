"""Pytest configuration and shared fixtures."""

import os
import sys
from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

PROJECT_ROOT = Path(__file__).resolve().parents[1]
project_root_str = str(PROJECT_ROOT)
if project_root_str in sys.path:
    sys.path.remove(project_root_str)
sys.path.insert(0, project_root_str)

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

# ruff: noqa: E402 - Imports must come after environment variable setup
from invulnerable.db import Base, get_db
from invulnerable.main import app
from invulnerable.repositories.dependencies import get_webhook_client
from invulnerable.services.notifications.webhook import WebhookClient

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Fixed clock for deterministic SLA and diff tests
NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
async def db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose(close=True)


@pytest.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession]:
    """Create test database session."""
    async_session = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    session = async_session()
    try:
        yield session
    finally:
        await session.close()


@pytest.fixture
def mock_http_client():
    """httpx.AsyncClient stand-in whose POST returns 200."""
    http_client = AsyncMock()
    response = MagicMock()
    response.status_code = 200
    http_client.post = AsyncMock(return_value=response)
    return http_client


@pytest.fixture
def webhook_client(mock_http_client) -> WebhookClient:
    return WebhookClient(mock_http_client)


@pytest.fixture
async def client(db_session: AsyncSession, webhook_client: WebhookClient):
    """Create test client with database and webhook client overrides."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_webhook_client] = lambda: webhook_client

    test_client = AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test", follow_redirects=True
    )

    try:
        yield test_client
    finally:
        await test_client.aclose()
        app.dependency_overrides.clear()


# ============================================
# Factory Fixtures
# ============================================


@pytest.fixture
def make_image():
    """Factory fixture to create Image instances with sensible defaults.

    Usage:
        image = make_image(repository="library/nginx", tag="1.25")
    """

    def _make_image(**kwargs):
        import secrets

        from invulnerable.models import Image

        defaults = {
            "registry_host": "docker.io",
            "repository": f"test/app-{secrets.token_hex(4)}",
            "tag": "latest",
        }
        return Image(**{**defaults, **kwargs})

    return _make_image


@pytest.fixture
def make_scan():
    """Factory fixture to create Scan instances with sensible defaults.

    Usage:
        scan = make_scan(image_id=image.id, scan_date=NOW)
    """

    def _make_scan(**kwargs):
        from invulnerable.models import Scan

        defaults = {
            "image_id": 1,
            "scan_date": NOW,
            "status": "completed",
            "sla_critical": 7,
            "sla_high": 30,
            "sla_medium": 90,
            "sla_low": 180,
        }
        return Scan(**{**defaults, **kwargs})

    return _make_scan


@pytest.fixture
def make_vulnerability():
    """Factory fixture to create Vulnerability instances with sensible defaults.

    Usage:
        vuln = make_vulnerability(cve_id="CVE-2024-0001", severity="Critical")

    Generates random CVE IDs and provides defaults for all required fields.
    """

    def _make_vulnerability(**kwargs):
        import secrets

        from invulnerable.models import Vulnerability

        defaults = {
            "cve_id": f"CVE-2024-{secrets.randbelow(99999):05d}",
            "package_name": "test-package",
            "package_version": "1.0.0",
            "severity": "Medium",
            "status": "active",
            "first_detected_at": NOW,
            "last_seen_at": NOW,
        }
        return Vulnerability(**{**defaults, **kwargs})

    return _make_vulnerability


@pytest.fixture
def link_vulnerabilities(db_session: AsyncSession):
    """Associate persisted vulnerabilities with a persisted scan."""

    async def _link(scan, vulnerabilities):
        from invulnerable.models import scan_vulnerabilities

        for vuln in vulnerabilities:
            await db_session.execute(
                insert(scan_vulnerabilities).values(
                    scan_id=scan.id, vulnerability_id=vuln.id, created_at=NOW
                )
            )
        await db_session.commit()

    return _link


@pytest.fixture
async def image(db_session: AsyncSession, make_image):
    """A persisted image."""
    img = make_image(repository="library/nginx", tag="1.25")
    db_session.add(img)
    await db_session.commit()
    return img


def grype_match(cve_id, package, version, severity="High", fix_versions=None, pkg_type="deb"):
    """Build one entry of a Grype report's ``matches`` list."""
    return {
        "vulnerability": {
            "id": cve_id,
            "severity": severity,
            "dataSource": f"https://nvd.nist.gov/vuln/detail/{cve_id}",
            "description": f"{cve_id} in {package}",
            "fix": {"versions": fix_versions or [], "state": "fixed" if fix_versions else "not-fixed"},
        },
        "artifact": {"name": package, "version": version, "type": pkg_type},
    }
