"""
Pytest configuration for Django testing.
"""

import os
import sys
from pathlib import Path

import django
import pytest

# Add project root to Python path
BASE_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(BASE_DIR))

# Test data directory
DATA_DIR = BASE_DIR / "data"
DATA_DIR.mkdir(exist_ok=True)

# Deterministic test identities and wallets
ISSUER_WALLET = "0x" + "a1" * 20
OTHER_ISSUER_WALLET = "0x" + "a2" * 20
STUDENT_WALLET = "0x" + "b1" * 20
OTHER_STUDENT_WALLET = "0x" + "b2" * 20
NEW_WALLET = "0x" + "c1" * 20
STUDENT_NUMBER = "123456789012"
OTHER_STUDENT_NUMBER = "210987654321"


def pytest_configure(config):
    """Configure Django settings for testing."""
    # Set test environment variables
    test_env_vars = {
        "DJANGO_SETTINGS_MODULE": "cert_hub.settings",
        "DJANGO_DEBUG": "True",
        "DJANGO_SECRET_KEY": "test-secret-key-for-testing-only",
        "CERT_HUB_DB_NAME": str(DATA_DIR / "test_db.sqlite3"),
        "CERT_HUB_DOMAIN": "testserver",
        "CERT_HUB_LEDGER_BACKEND": "cert_hub.ledger.sandbox.SandboxLedger",
        "CERT_HUB_LEDGER_TIMEOUT": "5",
        "CERT_HUB_LOG_JSON": "False",
        "DJANGO_ALLOWED_HOSTS": "testserver,localhost",
        "NINJA_SKIP_REGISTRY": "1",  # Skip Ninja registry check for testing
    }

    # Override environment
    for key, value in test_env_vars.items():
        os.environ[key] = value

    # Setup Django
    django.setup()


@pytest.fixture
def ledger():
    # type: () -> object
    """Fresh in-memory sandbox ledger with a short timeout."""
    from cert_hub.ledger.sandbox import SandboxLedger

    return SandboxLedger(timeout=5.0)


@pytest.fixture
def service(db, ledger):
    # type: (object, object) -> object
    """Issuance service wired to the sandbox ledger and the default database."""
    from cert_hub.issuance import IssuanceService

    return IssuanceService(ledger)


@pytest.fixture
def issuer(service):
    # type: (object) -> object
    """An institution holding the issuer role on the ledger and locally."""
    return service.issuers.authorize("Test University", ISSUER_WALLET, "https://uni.example.com")


@pytest.fixture
def student_key():
    # type: () -> str
    from cert_hub.hashing import IdentityHasher

    return IdentityHasher().derive(STUDENT_NUMBER)


@pytest.fixture
def student(service, student_key):
    # type: (object, str) -> object
    """A registered certificate holder."""
    return service.registry.register(student_key, "Asha Rao", STUDENT_WALLET)


@pytest.fixture
def document():
    # type: () -> bytes
    """Deterministic certificate document bytes."""
    return b"%PDF-1.7\nCertificate of Completion: Distributed Systems\n%%EOF\n"


@pytest.fixture
def certificate(service, issuer, student, document):
    # type: (object, object, object, bytes) -> object
    """A certificate anchored on the ledger and stored locally."""
    return service.issue_certificate(document, student.identity_key, ISSUER_WALLET, "Distributed Systems")


@pytest.fixture
def api_client(db, ledger, monkeypatch):
    """Provide Django Ninja TestClient wired to the test sandbox ledger."""
    from ninja.testing import TestClient

    from cert_hub import api as api_module

    monkeypatch.setattr(api_module, "get_ledger_client", lambda: ledger)
    return TestClient(api_module.api)


# Helper functions for testing
def assert_validation_error(func, *args, expected_message=None, **kwargs):
    # type: (callable, tuple, str|None, dict) -> Exception
    """Helper for testing validation errors."""
    with pytest.raises(ValueError) as exc_info:
        func(*args, **kwargs)
    if expected_message:
        assert expected_message in str(exc_info.value)
    return exc_info.value
