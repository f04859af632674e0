# config.py
import os

from dotenv import load_dotenv

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

load_dotenv(os.path.join(BASE_DIR, '.env'))


def _path(value):
    if not value:
        return value
    if os.path.isabs(value):
        return value
    return os.path.join(BASE_DIR, value)


# Flask session signing key
DEFAULT_SECRET_KEY = 'dev-only-insecure-secret'
SECRET_KEY = os.environ.get('SECRET_KEY', DEFAULT_SECRET_KEY)

# Google Spreadsheet ID
SPREADSHEET_ID = os.environ.get('GOOGLE_SPREADSHEET_ID', '')

# Service account key file used to talk to the Sheets API
CREDENTIALS_FILE = _path(os.environ.get('GOOGLE_APPLICATION_CREDENTIALS', ''))

# Name of the inventory tab and its numeric id (needed for deleting rows)
SHEET_NAME = os.environ.get('GOOGLE_SHEET_NAME', 'Inventory')
SHEET_GID = os.environ.get('GOOGLE_SHEET_GID')

# OAuth client for "Sign in with Google"
CLIENT_SECRET_FILE = _path(os.environ.get('GOOGLE_CLIENT_SECRET_FILE', 'client_secret.json'))

# Local user table
SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', 'sqlite:///' + os.path.join(BASE_DIR, 'inventory.db'))
SQLALCHEMY_TRACK_MODIFICATIONS = False

LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

CSRF_ENABLED = os.environ.get('CSRF_ENABLED', 'true').strip().lower() in ('1', 'true', 'yes', 'y')

# OAuth Scopes
SCOPES_EDIT = ['https://www.googleapis.com/auth/spreadsheets']
LOGIN_SCOPES = [
    'openid',
    'https://www.googleapis.com/auth/userinfo.email',
    'https://www.googleapis.com/auth/userinfo.profile',
]
