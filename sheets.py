"""Thin wrapper around the Google Sheets API used as the inventory store.

Every call is a synchronous round-trip with no caching and no retry. Failures
are logged and turned into ``None`` (mutations) or ``[]`` (reads); the reason
for the most recent failure is kept on ``last_failure``. A gateway is built
per request, so that state never crosses requests.
"""
import logging
import os
from collections import namedtuple

from flask import current_app, g
from google.auth.exceptions import GoogleAuthError, TransportError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

import config

logger = logging.getLogger(__name__)

SheetsFailure = namedtuple('SheetsFailure', ['reason', 'message', 'status'])


class SheetsConfigError(RuntimeError):
    """Raised when the spreadsheet id or the credentials file is missing."""


def classify_error(exc):
    """Map an exception raised by the client library to a SheetsFailure."""
    if isinstance(exc, HttpError):
        status = getattr(exc.resp, 'status', None)
        try:
            status = int(status)
        except (TypeError, ValueError):
            status = None
        if status in (401, 403):
            reason = 'auth'
        elif status == 404:
            reason = 'not_found'
        elif status == 429:
            reason = 'quota'
        else:
            reason = 'error'
        return SheetsFailure(reason, str(exc), status)
    if isinstance(exc, (TransportError, OSError)):
        return SheetsFailure('network', str(exc), None)
    if isinstance(exc, GoogleAuthError):
        return SheetsFailure('auth', str(exc), None)
    return SheetsFailure('error', str(exc), None)


def load_credentials(credentials_file):
    """Load service-account credentials, raising SheetsConfigError when unusable."""
    if not credentials_file or not os.path.exists(credentials_file):
        logger.error('Google application credentials file not found at: %s', credentials_file)
        raise SheetsConfigError('Google application credentials file not found.')
    try:
        return service_account.Credentials.from_service_account_file(
            credentials_file, scopes=config.SCOPES_EDIT)
    except (ValueError, OSError) as exc:
        logger.error('Could not load service account credentials: %s', exc)
        raise SheetsConfigError('Failed to initialize Google Sheets service: %s' % exc) from exc


class GoogleSheetsService:
    """Gateway for one request. The API client and ``last_failure`` are not shared between threads."""

    def __init__(self, spreadsheet_id, credentials_file=None, service=None, credentials=None):
        if not spreadsheet_id:
            logger.error('Google Spreadsheet ID is not configured.')
            raise SheetsConfigError('Google Spreadsheet ID is not configured.')
        self.spreadsheet_id = spreadsheet_id
        self.last_failure = None

        if service is None:
            if credentials is None:
                credentials = load_credentials(credentials_file)
            service = build('sheets', 'v4', credentials=credentials, cache_discovery=False)
        self.service = service

    def _failed(self, exc, action, **context):
        self.last_failure = classify_error(exc)
        logger.error('Error %s: %s (spreadsheet=%s, %s)', action, exc, self.spreadsheet_id,
                     ', '.join('%s=%r' % item for item in sorted(context.items())))

    def get_sheet_data(self, range_name):
        """Return the rows in ``range_name`` as lists of raw cell values."""
        self.last_failure = None
        try:
            result = self.service.spreadsheets().values().get(
                spreadsheetId=self.spreadsheet_id,
                range=range_name
            ).execute()
        except Exception as exc:
            self._failed(exc, 'getting sheet data', range=range_name)
            return []
        return result.get('values', [])

    def append_sheet_data(self, range_name, values):
        """Append ``values`` after the last row of the table found in ``range_name``."""
        self.last_failure = None
        body = {'values': values}
        try:
            return self.service.spreadsheets().values().append(
                spreadsheetId=self.spreadsheet_id,
                range=range_name,
                valueInputOption='USER_ENTERED',
                insertDataOption='INSERT_ROWS',
                body=body
            ).execute()
        except Exception as exc:
            # values may hold user data
            self._failed(exc, 'appending sheet data', range=range_name, values=values)
            return None

    def update_sheet_data(self, range_name, values):
        self.last_failure = None
        body = {'values': values}
        try:
            return self.service.spreadsheets().values().update(
                spreadsheetId=self.spreadsheet_id,
                range=range_name,
                valueInputOption='USER_ENTERED',
                body=body
            ).execute()
        except Exception as exc:
            self._failed(exc, 'updating sheet data', range=range_name, values=values)
            return None

    def clear_sheet_data(self, range_name):
        self.last_failure = None
        try:
            return self.service.spreadsheets().values().clear(
                spreadsheetId=self.spreadsheet_id,
                range=range_name,
                body={}
            ).execute()
        except Exception as exc:
            self._failed(exc, 'clearing sheet data', range=range_name)
            return None

    def delete_sheet_row(self, sheet_gid, row_index):
        """Delete the single physical row at zero-based ``row_index``.

        Rows below it move up by one, so any positions computed before the
        call are stale afterwards.
        """
        self.last_failure = None
        requests = [{
            "deleteDimension": {
                "range": {
                    "sheetId": sheet_gid,
                    "dimension": "ROWS",
                    "startIndex": row_index,
                    "endIndex": row_index + 1
                }
            }
        }]
        body = {"requests": requests}
        try:
            return self.service.spreadsheets().batchUpdate(
                spreadsheetId=self.spreadsheet_id,
                body=body
            ).execute()
        except Exception as exc:
            self._failed(exc, 'deleting sheet row', sheet_gid=sheet_gid, row_index=row_index)
            return None

    def get_sheet_gid(self, sheet_name):
        """Return the tab id for ``sheet_name``, or None when the tab is missing or the read fails."""
        self.last_failure = None
        try:
            spreadsheet = self.service.spreadsheets().get(spreadsheetId=self.spreadsheet_id).execute()
        except Exception as exc:
            self._failed(exc, 'reading spreadsheet metadata', sheet_name=sheet_name)
            return None
        for sheet in spreadsheet.get('sheets', []):
            if sheet['properties']['title'] == sheet_name:
                return sheet['properties']['sheetId']
        return None

    def ensure_sheet(self, sheet_name):
        """Creates the tab if it doesn't exist. Returns True when it exists afterwards."""
        if self.get_sheet_gid(sheet_name) is not None:
            return True
        if self.last_failure is not None:
            return False
        body = {"requests": [{"addSheet": {"properties": {"title": sheet_name}}}]}
        try:
            self.service.spreadsheets().batchUpdate(
                spreadsheetId=self.spreadsheet_id,
                body=body
            ).execute()
        except Exception as exc:
            self._failed(exc, 'creating sheet', sheet_name=sheet_name)
            return False
        logger.info('Created sheet %s', sheet_name)
        return True


def _configured_factory(app):
    spreadsheet_id = app.config['SPREADSHEET_ID']
    if not spreadsheet_id:
        logger.error('Google Spreadsheet ID is not configured.')
        raise SheetsConfigError('Google Spreadsheet ID is not configured.')
    credentials = load_credentials(app.config['CREDENTIALS_FILE'])

    def factory():
        return GoogleSheetsService(spreadsheet_id, credentials=credentials)
    return factory


def get_sheets_service():
    """Return the gateway for the current request.

    Credentials are loaded once per app; the API client is built per request
    because its HTTP transport is not thread-safe.
    """
    if 'sheets' not in g:
        factory = current_app.extensions.get('sheets')
        if factory is None:
            factory = _configured_factory(current_app)
            current_app.extensions['sheets'] = factory
        g.sheets = factory()
    return g.sheets
