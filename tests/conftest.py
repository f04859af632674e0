from __future__ import annotations

import logging

import pytest

from app import create_app
from fake_sheets import FakeSheetsService
from inventory import HEADERS
from sheets import GoogleSheetsService

OAK_ID = "8c1d3f52-0000-4000-8000-000000000001"
RUM_ID = "8c1d3f52-0000-4000-8000-000000000002"


@pytest.fixture()
def sheet_rows():
    return [
        list(HEADERS),
        [OAK_ID, "Oak Whiskey", "Whiskey", "Oakridge", "700", "34.5", "6", "2025-05-30 10:00:00"],
        [RUM_ID, "Dark Rum", "Rum", "Harbour", "1000", "21", "12", "2025-05-30 11:00:00"],
    ]


@pytest.fixture()
def fake_service(sheet_rows):
    return FakeSheetsService(sheet_rows)


@pytest.fixture()
def sheets(fake_service):
    return GoogleSheetsService("spreadsheet-test", service=fake_service)


@pytest.fixture()
def app(fake_service):
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "SHEET_NAME": "Inventory",
        "SHEET_GID": "123",
        "CSRF_ENABLED": False,
        "LOG_LEVEL": logging.DEBUG,
    })
    app.extensions["sheets"] = lambda: GoogleSheetsService("spreadsheet-test", service=fake_service)
    yield app


@pytest.fixture()
def client(app):
    return app.test_client()
