# StockScan Test Suite - Shared Configuration and Fixtures
#
# This module provides:
# - Test database provisioning (ephemeral SQLite file per test run)
# - An httpx client bound to the WSGI app (or to an external server)
# - Store/product/session factories driven through the HTTP API
# - Failure message formatting

import os
import sys
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional
from dataclasses import dataclass

import pytest
import httpx

# Add backend to path for imports
REPO_ROOT = Path(__file__).parent.parent
BACKEND_DIR = REPO_ROOT / "backend"
sys.path.insert(0, str(BACKEND_DIR))


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class TestConfig:
    """Test configuration with environment variable overrides."""
    # Set TEST_EXTERNAL_SERVER=1 to hit a running server instead of the in-process app
    external_server: bool = bool(os.environ.get("TEST_EXTERNAL_SERVER"))
    backend_base_url: str = os.environ.get("TEST_BACKEND_URL", "http://127.0.0.1:5001")

    # Timeouts
    request_timeout: float = float(os.environ.get("TEST_REQUEST_TIMEOUT", "30"))

    # Concurrency (for stress tests)
    stress_users: int = int(os.environ.get("TEST_STRESS_USERS", "10"))
    stress_duration: int = int(os.environ.get("TEST_STRESS_DURATION", "60"))


# =============================================================================
# FAILURE MESSAGE HELPER
# =============================================================================

class TestFailure(Exception):
    """
    Custom exception with detailed, human-readable failure messages.

    Structure:
    1. Scenario: What was being tested
    2. Expected: What should have happened
    3. Actual: What actually happened
    4. Likely Cause: Most probable reason for failure
    5. Code Location: Where to look in the codebase
    """

    def __init__(
        self,
        scenario: str,
        expected: str,
        actual: str,
        likely_cause: str,
        code_location: str,
        response: Optional[httpx.Response] = None,
        extra_context: Optional[Dict[str, Any]] = None
    ):
        self.scenario = scenario
        self.expected = expected
        self.actual = actual
        self.likely_cause = likely_cause
        self.code_location = code_location
        self.response = response
        self.extra_context = extra_context or {}

        super().__init__(self._format_message())

    def _format_message(self) -> str:
        lines = [
            "",
            "=" * 80,
            "TEST FAILURE DETAILS",
            "=" * 80,
            f"SCENARIO: {self.scenario}",
            "-" * 80,
            f"EXPECTED: {self.expected}",
            f"ACTUAL: {self.actual}",
            "-" * 80,
            f"LIKELY CAUSE: {self.likely_cause}",
            f"CODE LOCATION: {self.code_location}",
        ]

        if self.response is not None:
            lines.extend([
                "-" * 80,
                f"HTTP STATUS: {self.response.status_code}",
                f"RESPONSE BODY: {self.response.text[:1000]}",
            ])

        if self.extra_context:
            lines.append("-" * 80)
            lines.append("EXTRA CONTEXT:")
            for key, value in self.extra_context.items():
                lines.append(f"  {key}: {value}")

        lines.append("=" * 80)
        return "\n".join(lines)


def assert_response(
    response: httpx.Response,
    expected_status: int,
    scenario: str,
    code_location: str,
    expected_body_contains: Optional[str] = None
):
    """
    Assert HTTP response status and optionally body content.
    Raises TestFailure with detailed message on failure.
    """
    if response.status_code != expected_status:
        raise TestFailure(
            scenario=scenario,
            expected=f"HTTP {expected_status}",
            actual=f"HTTP {response.status_code}",
            likely_cause=_infer_cause(response),
            code_location=code_location,
            response=response
        )

    if expected_body_contains and expected_body_contains not in response.text:
        raise TestFailure(
            scenario=scenario,
            expected=f"Response body contains: {expected_body_contains}",
            actual=f"Response body: {response.text[:500]}",
            likely_cause="Response format changed or wrong endpoint hit",
            code_location=code_location,
            response=response
        )


def _infer_cause(response: httpx.Response) -> str:
    """Infer likely cause from response status/body."""
    if response.status_code == 404:
        return "Resource not found - wrong ID, deleted, or scan session already closed"
    elif response.status_code == 400:
        return "Invalid request - missing required field or validation failed"
    elif response.status_code == 409:
        return "Conflict - insufficient stock or input sent to the wrong scan channel"
    elif response.status_code == 503:
        return "Persistence failure - database unavailable"
    elif response.status_code == 500:
        return "Server error - check backend logs for stack trace"
    else:
        return f"Unexpected status code {response.status_code}"


# =============================================================================
# HTTP CLIENT
# =============================================================================

class APIClient:
    """
    HTTP client wrapper with JSON convenience methods.

    With an app, requests go through httpx.WSGITransport and never leave
    the process; without one they go to base_url over the network.
    """

    def __init__(self, base_url: str, timeout: float = 30.0, app=None):
        self.base_url = base_url.rstrip("/")
        transport = httpx.WSGITransport(app=app) if app is not None else None
        self.client = httpx.Client(timeout=timeout, transport=transport)

    def _headers(self, extra: Optional[Dict] = None) -> Dict:
        headers = {"Content-Type": "application/json"}
        if extra:
            headers.update(extra)
        return headers

    def get(self, path: str, params: Optional[Dict] = None, **kwargs) -> httpx.Response:
        return self.client.get(f"{self.base_url}{path}", headers=self._headers(), params=params, **kwargs)

    def post(self, path: str, json: Optional[Dict] = None, **kwargs) -> httpx.Response:
        return self.client.post(f"{self.base_url}{path}", headers=self._headers(), json=json, **kwargs)

    def put(self, path: str, json: Optional[Dict] = None, **kwargs) -> httpx.Response:
        return self.client.put(f"{self.base_url}{path}", headers=self._headers(), json=json, **kwargs)

    def patch(self, path: str, json: Optional[Dict] = None, **kwargs) -> httpx.Response:
        return self.client.patch(f"{self.base_url}{path}", headers=self._headers(), json=json, **kwargs)

    def delete(self, path: str, **kwargs) -> httpx.Response:
        return self.client.delete(f"{self.base_url}{path}", headers=self._headers(), **kwargs)

    def close(self):
        """Close the HTTP client."""
        self.client.close()


# =============================================================================
# APPLICATION MANAGEMENT
# =============================================================================

class AppManager:
    """
    Builds the Flask app on a throwaway SQLite file for the test session.
    """

    def __init__(self, config: TestConfig):
        self.config = config
        self.app = None
        self.db_file: Optional[Path] = None

    def start(self):
        from stockscan import create_app
        from stockscan.extensions import db

        temp_dir = tempfile.mkdtemp(prefix="stockscan_test_")
        self.db_file = Path(temp_dir) / "test_stockscan.sqlite3"

        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{self.db_file}",
            "CAMERA_RETRY_BACKOFF_SECONDS": 0,
        })
        with self.app.app_context():
            db.create_all()
        return self.app

    def stop(self):
        """Close open sessions and remove the temp database."""
        if self.app is not None:
            from stockscan.extensions import db

            self.app.extensions["scan_sessions"].close_all()
            with self.app.app_context():
                db.engine.dispose()
            self.app = None

        if self.db_file and self.db_file.parent.exists():
            shutil.rmtree(self.db_file.parent, ignore_errors=True)


# =============================================================================
# TEST DATA FACTORIES
# =============================================================================

class TestDataFactory:
    """
    Factory for creating test data via API calls.

    Codes are prefixed per factory so tests sharing one database never
    collide on the store-wide unit-code uniqueness rule.
    """

    _instances = 0

    def __init__(self, client: APIClient):
        TestDataFactory._instances += 1
        self.client = client
        self.prefix = f"T{TestDataFactory._instances}"
        self._counter = 0

    def _next_id(self) -> int:
        self._counter += 1
        return self._counter

    def code(self, label: str) -> str:
        return f"{self.prefix}-{label}"

    def create_store(self, name: Optional[str] = None) -> Dict:
        n = self._next_id()
        response = self.client.post("/api/stores", json={
            "name": name or f"Test Store {self.prefix}-{n}",
            "code": f"{self.prefix}-{n}",
        })
        assert_response(
            response, 201,
            scenario="Create test store",
            code_location="backend/stockscan/routes/stores.py:create_store_route"
        )
        return response.json()["store"]

    def create_product(
        self,
        store_id: int,
        name: Optional[str] = None,
        codes: Optional[List[str]] = None,
        tags: Optional[List[str]] = None,
        price_cents: int = 10_000,
        purchase_qty: Optional[int] = None,
    ) -> Dict:
        """Create a product via API; codes are given without the factory prefix."""
        n = self._next_id()
        body = {
            "store_id": store_id,
            "name": name or f"Test Product {n}",
            "selling_price_cents": price_cents,
            "codes": [self.code(c) for c in (codes or [])],
            "tags": tags,
        }
        if purchase_qty is not None:
            body["purchase_qty"] = purchase_qty
        response = self.client.post("/api/products", json=body)
        if response.status_code == 201:
            return response.json()["product"]
        raise TestFailure(
            scenario="Create test product",
            expected="HTTP 201",
            actual=f"HTTP {response.status_code}",
            likely_cause="Product creation failed - check code uniqueness and validation",
            code_location="backend/stockscan/routes/products.py:create_product_route",
            response=response
        )

    def open_session(self, store_id: int, **body) -> Dict:
        body["store_id"] = store_id
        response = self.client.post("/api/scan-sessions", json=body)
        assert_response(
            response, 201,
            scenario="Open scan session",
            code_location="backend/stockscan/routes/scan_sessions.py:open_session_route"
        )
        return response.json()["session"]

    def scan(self, session_id: str, label: str) -> Dict:
        """Submit a prefixed code through manual entry."""
        response = self.client.post(f"/api/scan-sessions/{session_id}/codes", json={"code": self.code(label)})
        assert_response(
            response, 200,
            scenario=f"Scan code {self.code(label)}",
            code_location="backend/stockscan/routes/scan_sessions.py:submit_code_route"
        )
        return response.json()["session"]

    def commit(self, session_id: str, **body) -> httpx.Response:
        return self.client.post(f"/api/scan-sessions/{session_id}/commit", json=body)

    def available_qty(self, product_id: int) -> int:
        response = self.client.get(f"/api/products/{product_id}")
        assert_response(
            response, 200,
            scenario="Read product stock",
            code_location="backend/stockscan/routes/products.py:get_product_route"
        )
        return response.json()["product"]["available_qty"]


# =============================================================================
# PYTEST FIXTURES
# =============================================================================

@pytest.fixture(scope="session")
def test_config() -> TestConfig:
    """Provide test configuration."""
    return TestConfig()


@pytest.fixture(scope="session")
def app_manager(test_config: TestConfig) -> Generator[AppManager, None, None]:
    """
    Build the app once per test session.
    External-server mode skips it.
    """
    manager = AppManager(test_config)
    if not test_config.external_server:
        manager.start()
    yield manager
    manager.stop()


@pytest.fixture(scope="session")
def api_client(test_config: TestConfig, app_manager: AppManager) -> Generator[APIClient, None, None]:
    if test_config.external_server:
        client = APIClient(test_config.backend_base_url, timeout=test_config.request_timeout)
    else:
        client = APIClient("http://testserver", timeout=test_config.request_timeout, app=app_manager.app)
    yield client
    client.close()


@pytest.fixture
def client(api_client: APIClient) -> APIClient:
    return api_client


@pytest.fixture
def factory(client: APIClient) -> TestDataFactory:
    return TestDataFactory(client)


@pytest.fixture
def store(factory: TestDataFactory) -> Dict:
    return factory.create_store()


# =============================================================================
# TEST MARKERS
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "smoke: Quick smoke tests for critical paths")
    config.addinivalue_line("markers", "full: Full regression tests")
    config.addinivalue_line("markers", "stress: Load/stress tests")
    config.addinivalue_line("markers", "scanning: Scan session and input channel tests")
    config.addinivalue_line("markers", "sales: Sale commit/edit/delete tests")
    config.addinivalue_line("markers", "inventory: Inventory counter tests")
    config.addinivalue_line("markers", "products: Product catalog tests")
    config.addinivalue_line("markers", "debts: Unpaid-supplies tests")
    config.addinivalue_line("markers", "concurrent: Concurrency tests")
