import logging
import secrets

import click
from flask import Blueprint, Flask, abort, current_app, flash, redirect, render_template, request, session, url_for

import config
from auth import bp as auth_bp
from auth import CSRF_SESSION_KEY, csrf_token, current_user
from inventory import (
    CREATE_RULES,
    FORM_FIELDS,
    HEADERS,
    LAST_COLUMN,
    UPDATE_RULES,
    LiquorInventory,
    a1,
    request_key,
    sheet_row_number,
    validate,
)
from logging_config import configure_logging
from models import db
from sheets import get_sheets_service

logger = logging.getLogger(__name__)

liquor = Blueprint('liquor', __name__, url_prefix='/liquor')


def get_inventory():
    return LiquorInventory(
        get_sheets_service(),
        sheet_name=current_app.config['SHEET_NAME'],
        sheet_gid=current_app.config['SHEET_GID'],
    )


def form_values(item=None):
    """Values for the form inputs, keyed by request key."""
    item = item or {}
    return {request_key(header): item.get(header) or '' for header in FORM_FIELDS}


@liquor.route('', methods=['GET'])
def index():
    search = request.args.get('search', '').strip()
    items = get_inventory().list_items(search or None)
    return render_template('liquor/index.html', liquor_items=items, headers=HEADERS, search=search)


@liquor.route('/create', methods=['GET'])
def create():
    return render_template('liquor/create.html', form_fields=FORM_FIELDS, values=form_values(), errors={})


@liquor.route('', methods=['POST'])
def store():
    data, errors = validate(request.form, CREATE_RULES)
    if errors:
        return render_template('liquor/create.html', form_fields=FORM_FIELDS,
                               values=request.form, errors=errors), 422

    outcome = get_inventory().add_item(data)
    if outcome.status == 'ok':
        flash(outcome.message, 'success')
        return redirect(url_for('liquor.index'))
    flash(outcome.message, 'error')
    return render_template('liquor/create.html', form_fields=FORM_FIELDS, values=request.form, errors={})


@liquor.route('/<item_id>/edit', methods=['GET'])
def edit(item_id):
    found = get_inventory().find(item_id)
    if found is None:
        logger.error("Item with ID %s not found for editing.", item_id)
        flash('Liquor item not found.', 'error')
        return redirect(url_for('liquor.index'))

    position, item = found
    return render_template('liquor/edit.html', item=item, item_id=item_id, form_fields=FORM_FIELDS,
                           values=form_values(item), errors={}, sheet_row_number=sheet_row_number(position))


@liquor.route('/<item_id>', methods=['PUT'])
def update(item_id):
    data, errors = validate(request.form, UPDATE_RULES)
    if errors:
        return render_template('liquor/edit.html', item=None, item_id=item_id, form_fields=FORM_FIELDS,
                               values=request.form, errors=errors, sheet_row_number=None), 422

    outcome = get_inventory().update_item(item_id, data)
    if outcome.status == 'ok':
        flash(outcome.message, 'success')
        return redirect(url_for('liquor.index'))
    flash(outcome.message, 'error')
    if outcome.status == 'not_found':
        return redirect(url_for('liquor.index'))
    return render_template('liquor/edit.html', item=None, item_id=item_id, form_fields=FORM_FIELDS,
                           values=request.form, errors={}, sheet_row_number=None)


@liquor.route('/<item_id>', methods=['DELETE'])
def destroy(item_id):
    outcome = get_inventory().delete_item(item_id)
    if outcome.status == 'ok':
        flash(outcome.message, 'success')
    elif outcome.status == 'unverified':
        flash(outcome.message, 'warning')
    else:
        flash(outcome.message, 'error')
    return redirect(url_for('liquor.index'))


@liquor.route('/<item_id>', methods=['POST'])
def method_override(item_id):
    # HTML forms can only POST; the real verb travels in _method.
    method = request.form.get('_method', '').upper()
    if method == 'PUT':
        return update(item_id)
    if method == 'DELETE':
        return destroy(item_id)
    abort(405)


def home():
    if current_user() is not None:
        return redirect(url_for('liquor.index'))
    return render_template('welcome.html')


def check_csrf_token():
    if not current_app.config.get('CSRF_ENABLED', True):
        return
    if request.method not in ('POST', 'PUT', 'DELETE'):
        return
    token = request.form.get('_token') or request.headers.get('X-CSRF-Token')
    expected = session.get(CSRF_SESSION_KEY)
    if not token or not expected or not secrets.compare_digest(token.encode(), expected.encode()):
        logger.warning('Rejected %s %s: missing or stale CSRF token', request.method, request.path)
        abort(400)


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(config)
    if overrides:
        app.config.update(overrides)

    configure_logging(app.config['LOG_LEVEL'])
    if app.config['SECRET_KEY'] == config.DEFAULT_SECRET_KEY and not app.testing:
        logger.warning('SECRET_KEY is not set; sessions are signed with the public development key.')

    db.init_app(app)
    with app.app_context():
        db.create_all()

    app.before_request(check_csrf_token)
    app.add_url_rule('/', 'home', home)
    app.register_blueprint(liquor)
    app.register_blueprint(auth_bp)

    @app.context_processor
    def template_globals():
        return {'csrf_token': csrf_token, 'current_user': current_user(), 'request_key': request_key}

    @app.cli.command('init-sheet')
    def init_sheet():
        """Create the inventory tab and header row, then print its tab id."""
        sheets = get_sheets_service()
        sheet_name = app.config['SHEET_NAME']
        if not sheets.ensure_sheet(sheet_name):
            raise click.ClickException('Could not find or create sheet %s' % sheet_name)

        if not sheets.get_sheet_data(a1(sheet_name, '1:1')):
            response = sheets.update_sheet_data(a1(sheet_name, 'A1:%s1' % LAST_COLUMN), [HEADERS])
            if response is None:
                raise click.ClickException('Could not write the header row')
            click.echo('Wrote header row to %s' % sheet_name)

        gid = sheets.get_sheet_gid(sheet_name)
        click.echo('GOOGLE_SHEET_GID=%s' % gid)

    return app


if __name__ == '__main__':
    create_app().run(debug=True, port=5000)
