from __future__ import annotations

import logging

import httplib2
import pytest
from googleapiclient.errors import HttpError

import sheets as sheets_module
from fake_sheets import FakeSheetsService
from sheets import GoogleSheetsService, SheetsConfigError


def _http_error(status: int) -> HttpError:
    return HttpError(httplib2.Response({"status": status}), b'{"error": {"message": "boom"}}')


def test_constructor_requires_spreadsheet_id() -> None:
    with pytest.raises(SheetsConfigError):
        GoogleSheetsService("", service=FakeSheetsService())


def test_constructor_requires_existing_credentials_file(tmp_path) -> None:
    with pytest.raises(SheetsConfigError):
        GoogleSheetsService("spreadsheet", str(tmp_path / "missing.json"))
    with pytest.raises(SheetsConfigError):
        GoogleSheetsService("spreadsheet", None)


def test_get_sheet_data_returns_rows_as_stored(sheets, fake_service) -> None:
    fake_service.rows.append(["id-3", "Gin"])

    rows = sheets.get_sheet_data("'Inventory'!A:H")

    assert rows[0][0] == "ID"
    assert rows[-1] == ["id-3", "Gin"]
    assert sheets.last_failure is None


def test_get_sheet_data_of_empty_sheet() -> None:
    sheets = GoogleSheetsService("spreadsheet", service=FakeSheetsService())

    assert sheets.get_sheet_data("'Inventory'!A:H") == []
    assert sheets.last_failure is None


def test_read_failure_returns_empty_list_and_logs_range(sheets, fake_service, caplog) -> None:
    fake_service.fail = _http_error(429)

    with caplog.at_level(logging.ERROR, logger="sheets"):
        rows = sheets.get_sheet_data("'Inventory'!A:H")

    assert rows == []
    assert sheets.last_failure.reason == "quota"
    assert sheets.last_failure.status == 429
    assert "'Inventory'!A:H" in caplog.text


@pytest.mark.parametrize(
    "exc, reason",
    [
        (_http_error(401), "auth"),
        (_http_error(403), "auth"),
        (_http_error(404), "not_found"),
        (_http_error(429), "quota"),
        (_http_error(500), "error"),
        (ConnectionResetError("reset"), "network"),
        (RuntimeError("odd"), "error"),
    ],
)
def test_classify_error(exc: Exception, reason: str) -> None:
    assert sheets_module.classify_error(exc).reason == reason


def test_append_uses_user_entered_values(sheets, fake_service) -> None:
    response = sheets.append_sheet_data("'Inventory'!A1", [["id-3", "Gin"]])

    assert response["updates"]["updatedCells"] == 2
    kind, range_name, value_input, body = fake_service.calls[-1]
    assert (kind, range_name, value_input) == ("append", "'Inventory'!A1", "USER_ENTERED")
    assert body == {"values": [["id-3", "Gin"]]}
    assert fake_service.rows[-1] == ["id-3", "Gin"]


def test_append_failure_returns_none_and_logs_values(sheets, fake_service, caplog) -> None:
    fake_service.fail = ConnectionResetError("reset")

    with caplog.at_level(logging.ERROR, logger="sheets"):
        response = sheets.append_sheet_data("'Inventory'!A1", [["id-3", "Secret Gin"]])

    assert response is None
    assert sheets.last_failure.reason == "network"
    assert "Secret Gin" in caplog.text


def test_update_overwrites_exact_range(sheets, fake_service) -> None:
    response = sheets.update_sheet_data("'Inventory'!A3:B3", [["x", "y"]])

    assert response["updatedCells"] == 2
    assert fake_service.rows[2][:3] == ["x", "y", "Rum"]


def test_last_failure_is_reset_by_next_call(sheets, fake_service) -> None:
    fake_service.fail = _http_error(500)
    assert sheets.update_sheet_data("'Inventory'!A2:B2", [["x", "y"]]) is None
    assert sheets.last_failure is not None

    fake_service.fail = None
    sheets.get_sheet_data("'Inventory'!A:H")

    assert sheets.last_failure is None


def test_clear_blanks_cells_without_removing_rows(sheets, fake_service) -> None:
    sheets.clear_sheet_data("'Inventory'!A2:H2")

    assert len(fake_service.rows) == 3
    assert all(cell == "" for cell in fake_service.rows[1])


def test_delete_sheet_row_sends_dimension_delete(sheets, fake_service) -> None:
    response = sheets.delete_sheet_row(123, 1)

    assert response == {"replies": [{}]}
    _kind, body = fake_service.calls[-1]
    assert body == {
        "requests": [
            {
                "deleteDimension": {
                    "range": {"sheetId": 123, "dimension": "ROWS", "startIndex": 1, "endIndex": 2}
                }
            }
        ]
    }
    assert [row[1] for row in fake_service.rows] == ["Name", "Dark Rum"]


def test_delete_failure_returns_none(sheets, fake_service) -> None:
    fake_service.fail = _http_error(403)

    assert sheets.delete_sheet_row(123, 1) is None
    assert sheets.last_failure.reason == "auth"


def test_get_sheet_gid(sheets) -> None:
    assert sheets.get_sheet_gid("Inventory") == 123
    assert sheets.get_sheet_gid("Archive") is None


def test_get_sheet_gid_read_failure(sheets, fake_service) -> None:
    fake_service.fail = _http_error(403)

    assert sheets.get_sheet_gid("Inventory") is None
    assert sheets.last_failure.reason == "auth"


def test_ensure_sheet_creates_missing_tab(sheets, fake_service) -> None:
    assert sheets.ensure_sheet("Inventory") is True
    assert not any(call[0] == "batchUpdate" for call in fake_service.calls)

    assert sheets.ensure_sheet("Archive") is True
    assert sheets.get_sheet_gid("Archive") is not None


def test_ensure_sheet_reports_failure(sheets, fake_service) -> None:
    fake_service.fail = _http_error(500)

    assert sheets.ensure_sheet("Archive") is False


def test_get_sheets_service_is_built_per_request(app, fake_service) -> None:
    fake_service.fail = ConnectionResetError("reset")
    with app.test_request_context():
        first = sheets_module.get_sheets_service()
        assert sheets_module.get_sheets_service() is first
        first.get_sheet_data("'Inventory'!A:H")
        assert first.last_failure.reason == "network"

    fake_service.fail = None
    with app.test_request_context():
        second = sheets_module.get_sheets_service()
        assert second is not first
        assert second.last_failure is None


def test_credentials_are_loaded_once_per_app(app, monkeypatch) -> None:
    loaded = []
    built = []

    def fake_load(credentials_file):
        loaded.append(credentials_file)
        return object()

    def fake_build(*args, **kwargs):
        built.append(kwargs["credentials"])
        return FakeSheetsService()

    monkeypatch.setattr(sheets_module, "load_credentials", fake_load)
    monkeypatch.setattr(sheets_module, "build", fake_build)
    app.extensions.pop("sheets")
    app.config["SPREADSHEET_ID"] = "spreadsheet-test"
    app.config["CREDENTIALS_FILE"] = "service-account.json"

    for _ in range(2):
        with app.test_request_context():
            sheets_module.get_sheets_service()

    assert loaded == ["service-account.json"]
    assert len(built) == 2
    assert built[0] is built[1]


def test_load_credentials_requires_existing_file(tmp_path) -> None:
    with pytest.raises(SheetsConfigError):
        sheets_module.load_credentials(str(tmp_path / "missing.json"))


def test_get_sheets_service_without_configuration(app) -> None:
    app.extensions.pop("sheets")
    app.config["SPREADSHEET_ID"] = ""

    with app.app_context():
        with pytest.raises(SheetsConfigError):
            sheets_module.get_sheets_service()
