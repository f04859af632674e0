"""Sign in with Google and the local user session."""
import logging
import secrets
from collections import namedtuple

import google.auth.transport.requests
from flask import Blueprint, current_app, flash, redirect, request, session, url_for
from google.oauth2 import id_token
from google_auth_oauthlib.flow import Flow

from models import User, db

logger = logging.getLogger(__name__)

bp = Blueprint('auth', __name__)

# What Google tells us about the person signing in
GoogleIdentity = namedtuple('GoogleIdentity', ['google_id', 'name', 'email', 'avatar'])

CSRF_SESSION_KEY = '_token'


def resolve_user(identity):
    """Find or create the local user for a Google identity.

    Match on google_id first, then on email (linking the google_id), and only
    create a new password-less user when neither matches.
    """
    user = User.query.filter_by(google_id=identity.google_id).first()
    if user is not None:
        user.name = identity.name
        user.avatar = identity.avatar
    else:
        user = User.query.filter_by(email=identity.email).first()
        if user is not None:
            user.google_id = identity.google_id
            user.name = identity.name
            user.avatar = identity.avatar
        else:
            user = User(
                name=identity.name,
                email=identity.email,
                google_id=identity.google_id,
                avatar=identity.avatar,
            )
            db.session.add(user)
    db.session.commit()
    return user


def rotate_csrf_token():
    session[CSRF_SESSION_KEY] = secrets.token_urlsafe(32)
    return session[CSRF_SESSION_KEY]


def csrf_token():
    token = session.get(CSRF_SESSION_KEY)
    if not token:
        token = rotate_csrf_token()
    return token


def login_user(user, remember=True):
    session.clear()
    session['user_id'] = user.id
    session.permanent = remember
    rotate_csrf_token()


def logout_user():
    session.clear()
    rotate_csrf_token()


def current_user():
    user_id = session.get('user_id')
    if user_id is None:
        return None
    return db.session.get(User, user_id)


def _flow(state=None, code_verifier=None):
    return Flow.from_client_secrets_file(
        current_app.config['CLIENT_SECRET_FILE'],
        scopes=current_app.config['LOGIN_SCOPES'],
        state=state,
        code_verifier=code_verifier,
        redirect_uri=url_for('auth.google_callback', _external=True),
    )


def fetch_identity(authorization_response, state, code_verifier=None):
    """Exchange the callback URL for tokens and read the verified ID token."""
    flow = _flow(state, code_verifier)
    flow.fetch_token(authorization_response=authorization_response)
    credentials = flow.credentials
    claims = id_token.verify_oauth2_token(
        credentials.id_token,
        google.auth.transport.requests.Request(),
        flow.client_config['client_id'],
    )
    return GoogleIdentity(
        google_id=claims['sub'],
        name=claims.get('name') or claims['email'],
        email=claims['email'],
        avatar=claims.get('picture'),
    )


@bp.route('/auth/google/redirect')
def google_redirect():
    flow = _flow()
    authorization_url, state = flow.authorization_url(prompt='select_account')
    session['oauth_state'] = state
    session['oauth_code_verifier'] = flow.code_verifier
    return redirect(authorization_url)


@bp.route('/auth/google/callback')
def google_callback():
    try:
        identity = fetch_identity(request.url, session.get('oauth_state'), session.get('oauth_code_verifier'))
        user = resolve_user(identity)
    except Exception:
        db.session.rollback()
        logger.exception('Google Login Callback Error')
        flash('Login with Google failed due to an issue. Please try again or contact support '
              'if the problem persists.', 'error')
        return redirect(url_for('home'))

    login_user(user, remember=True)
    logger.info('User %s signed in with Google', user.id)
    return redirect(url_for('liquor.index'))


@bp.route('/logout', methods=['POST'])
def logout():
    logout_user()
    flash('You have been logged out successfully.', 'success')
    return redirect(url_for('home'))
