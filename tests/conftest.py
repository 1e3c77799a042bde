import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from expense_tracker.app import create_app
from expense_tracker.config import AppConfig
from expense_tracker.database import DatabaseManager
from expense_tracker.managers import CategoryManager, ExpenseManager, UserManager


class FakeModelClient:
    """Stands in for GenerativeModelClient; replies from a queue and records calls."""

    def __init__(self):
        self.responses = []
        self.calls = []

    def queue(self, response):
        self.responses.append(response)

    async def generate(self, prompt, images=()):
        self.calls.append({'prompt': prompt, 'images': list(images)})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_png(size=(8, 8)) -> bytes:
    buffer = io.BytesIO()
    Image.new('RGB', size, color=(255, 255, 255)).save(buffer, format='PNG')
    return buffer.getvalue()


@pytest.fixture
def app_config(tmp_path):
    return AppConfig(
        DB_FILE=str(tmp_path / 'test.db'),
        UPLOAD_DIR=str(tmp_path / 'uploads'),
        ENVIRONMENT='development',
        JWT_SECRET='test-secret',
        AI_API_KEY='test-key',
    )


@pytest.fixture
def fake_model():
    return FakeModelClient()


@pytest.fixture
async def db_file(app_config):
    await DatabaseManager(app_config.DB_FILE).initialize_database()
    return app_config.DB_FILE


@pytest.fixture
def users(db_file):
    return UserManager(db_file)


@pytest.fixture
def expenses(db_file):
    return ExpenseManager(db_file)


@pytest.fixture
def categories(db_file, app_config):
    return CategoryManager(db_file, app_config.DEFAULT_CATEGORIES)


@pytest.fixture
def client(app_config, fake_model):
    app = create_app(app_config, fake_model)
    with TestClient(app) as test_client:
        yield test_client


def register(client, username='alice', email='alice@example.com', password='secret123'):
    """Register a user and return its auth headers."""
    response = client.post('/api/auth/register', json={
        'username': username, 'email': email, 'password': password
    })
    assert response.status_code == 201, response.text
    return {'Authorization': f"Bearer {response.json()['token']}"}


@pytest.fixture
def auth_headers(client):
    return register(client)
