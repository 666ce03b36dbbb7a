import pytest
from fastapi.testclient import TestClient

from ringguard import RingGuard
from ringguard.api import create_app


@pytest.fixture
def guard():
    return RingGuard.local()


@pytest.fixture
def client(guard):
    return TestClient(create_app(guard))


@pytest.fixture
def ct(guard):
    """Encrypt a plaintext into its wire form."""
    return lambda value: guard.backend.encrypt(value).to_hex()
