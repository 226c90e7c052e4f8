import os

# Must be set before any devcircle module configures logging or reads secrets
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from bson import ObjectId
from fastapi import FastAPI
from fastapi.testclient import TestClient

from devcircle.middleware.error_handlers import ExceptionHandlerMiddleware
from devcircle.services.auth import get_current_user


@pytest.fixture
def current_user():
    return {
        "_id": ObjectId(),
        "firstName": "Alice",
        "lastName": "Walker",
        "email": "alice@example.com",
        "skills": ["javascript", "react"],
        "age": 25,
    }


@pytest.fixture
def make_client(current_user):
    """Build a TestClient around one router, authenticated as ``current_user``"""
    def _make(router, prefix: str = "", authenticated: bool = True) -> TestClient:
        app = FastAPI()
        app.add_middleware(ExceptionHandlerMiddleware)
        app.include_router(router, prefix=prefix)
        if authenticated:
            app.dependency_overrides[get_current_user] = lambda: current_user
        return TestClient(app)

    return _make
