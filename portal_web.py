#!/usr/bin/env python3
"""
Campus portal web API.
Flask routes for library borrow lookups and student theme permissions.

Authentication itself lives elsewhere: the login flow stores the caller's
``student_id`` in the Flask session and these routes only resolve it.
"""

import argparse
import logging
import os
from functools import wraps

from flask import Flask, g, jsonify, request

import portal
import database
from campus.errors import (
    DecodeError, NotAuthenticatedError, NotFoundError, PortalError,
    StorageError, ValidationError,
)
from campus.services import BorrowService, ThemePermissionService, ThemeService
from campus.session import SessionResolver
from funnel_client import FunnelClient, FunnelError

config = portal.load_config()

log_level = config['log_level']
portal_logger = portal.setup_logging(log_level)
web_logger = logging.getLogger('campus.web')
try:
    os.makedirs('logs', exist_ok=True)
    fh = logging.FileHandler('logs/portal_web.log')
    fh.setFormatter(logging.Formatter('[%(asctime)s] %(levelname)s %(name)s: %(message)s'))
    fh.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    web_logger.addHandler(fh)
except OSError:
    web_logger.warning('Could not create log file handler')

_theme_permission_service = ThemePermissionService(database)
_theme_service = ThemeService(database)
_borrow_service = BorrowService(FunnelClient(config['funnel_base_url'],
                                             timeout=config['funnel_timeout']))
_session_resolver = SessionResolver(database)

app = Flask(__name__)
app.secret_key = config['secret_key'] or os.urandom(24)


# Status codes for errors the services let through
ERROR_STATUS = (
    (NotAuthenticatedError, 401),
    (NotFoundError, 404),
    (ValidationError, 400),
    (DecodeError, 500),
    (StorageError, 500),
)


def json_success(data=None):
    """Wrap *data* in the standard success envelope."""
    return jsonify({'code': 1, 'msg': 'OK', 'data': data})


def error_response(exc: PortalError):
    """Map a service error to a JSON error body and status code.

    Storage failures carry no detail; the message is logged instead.
    """
    for exc_type, status in ERROR_STATUS:
        if isinstance(exc, exc_type):
            break
    else:
        status = 500
    if isinstance(exc, NotAuthenticatedError):
        return jsonify({'error': 'Not logged in'}), status
    if status == 500:
        web_logger.error(f"Request failed: {exc}")
        return jsonify({'error': 'Server error'}), status
    return jsonify({'error': str(exc)}), status


def require_login(f):
    """Decorator to require a resolvable session.

    Opens the request's database session as ``g.db`` and the caller as
    ``g.user``; the session is closed when the view returns.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        db = database.SessionLocal()
        try:
            try:
                g.user = _session_resolver.resolve(db)
            except PortalError as e:
                return error_response(e)
            g.db = db
            return f(*args, **kwargs)
        finally:
            db.close()
    return decorated_function


def require_admin(f):
    """Decorator to require admin privileges"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.user.role != 'admin':
            return jsonify({'error': 'Admin privileges required'}), 403
        return f(*args, **kwargs)
    return require_login(decorated_function)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _parse_theme_id(data: dict):
    theme_id = data.get('theme_id')
    if isinstance(theme_id, bool):
        return None
    if isinstance(theme_id, float) and not theme_id.is_integer():
        return None
    try:
        return int(theme_id)
    except (TypeError, ValueError):
        return None


@app.route('/health')
def health():
    return jsonify({'ok': True})


# ---------------------------------------------------------------------------
# Library
# ---------------------------------------------------------------------------

@app.route('/api/library/borrow/current')
@require_login
def api_borrow_current():
    """Get the items the caller currently has on loan"""
    try:
        items = _borrow_service.get_current(g.user)
    except FunnelError as e:
        web_logger.error(f"Error loading current borrows for {g.user.student_id}: {e}")
        return jsonify({'error': 'Server error'}), 500
    return json_success(items)


@app.route('/api/library/borrow/history')
@require_login
def api_borrow_history():
    """Get the caller's borrow history"""
    try:
        items = _borrow_service.get_history(g.user)
    except FunnelError as e:
        web_logger.error(f"Error loading borrow history for {g.user.student_id}: {e}")
        return jsonify({'error': 'Server error'}), 500
    return json_success(items)


# ---------------------------------------------------------------------------
# Themes (student)
# ---------------------------------------------------------------------------

@app.route('/api/theme', methods=['GET'])
@require_login
def api_theme():
    """Get the caller's current theme and every theme they may select"""
    student_id = g.user.student_id
    try:
        _theme_permission_service.add_default_theme_permission(g.db, student_id)
        permission = _theme_permission_service.get_theme_permission(g.db, student_id)
        themes = _theme_permission_service.get_themes(g.db, permission)
    except PortalError as e:
        return error_response(e)
    return json_success({
        'current_theme_id': permission.current_theme_id,
        'themes': [t.to_dict() for t in themes],
    })


@app.route('/api/theme/current', methods=['PUT'])
@require_login
def api_select_theme():
    """Select one of the caller's permitted themes"""
    theme_id = _parse_theme_id(_json_body())
    if theme_id is None:
        return jsonify({'error': 'theme_id must be an integer'}), 400
    try:
        _theme_permission_service.update_current_theme(g.db, theme_id, g.user.student_id)
    except PortalError as e:
        return error_response(e)
    return json_success()


# ---------------------------------------------------------------------------
# Themes (admin)
# ---------------------------------------------------------------------------

@app.route('/api/admin/theme/permission', methods=['POST'])
@require_admin
def api_grant_theme():
    """Grant a theme to a roster of students (empty roster = everyone)"""
    data = _json_body()
    theme_id = _parse_theme_id(data)
    if theme_id is None:
        return jsonify({'error': 'theme_id must be an integer'}), 400
    student_ids = data.get('student_ids') or []
    if not isinstance(student_ids, list) or not all(isinstance(s, str) for s in student_ids):
        return jsonify({'error': 'student_ids must be a list of strings'}), 400
    try:
        invalid = _theme_permission_service.add_theme_permission(g.db, theme_id, student_ids)
    except PortalError as e:
        return error_response(e)
    return json_success({'invalid_student_ids': invalid})


@app.route('/api/admin/theme/permission/<student_id>', methods=['DELETE'])
@require_admin
def api_delete_theme_permission(student_id):
    try:
        _theme_permission_service.delete_theme_permission(g.db, student_id)
    except PortalError as e:
        return error_response(e)
    return json_success()


@app.route('/api/admin/theme', methods=['GET'])
@require_admin
def api_list_themes():
    try:
        themes = _theme_service.list_themes(g.db)
        default_ids = _theme_service.get_default_theme_ids(g.db)
    except PortalError as e:
        return error_response(e)
    return json_success({
        'themes': [t.to_dict() for t in themes],
        'default_theme_ids': default_ids,
    })


@app.route('/api/admin/theme', methods=['POST'])
@require_admin
def api_create_theme():
    data = _json_body()
    theme_config = data.get('theme_config')
    if theme_config is not None and not isinstance(theme_config, dict):
        return jsonify({'error': 'theme_config must be an object'}), 400
    try:
        theme = _theme_service.create_theme(g.db, data.get('name'), data.get('type'),
                                            theme_config)
    except PortalError as e:
        return error_response(e)
    return json_success(theme.to_dict())


@app.route('/api/admin/theme/<int:theme_id>', methods=['DELETE'])
@require_admin
def api_delete_theme(theme_id):
    try:
        _theme_service.delete_theme(g.db, theme_id)
    except PortalError as e:
        return error_response(e)
    return json_success()


def main():
    parser = argparse.ArgumentParser(description='Campus portal web API')
    parser.add_argument('--host', default='127.0.0.1')
    parser.add_argument('--port', type=int, default=5000)
    parser.add_argument('--debug', action='store_true')
    args = parser.parse_args()

    if database.init_db():
        web_logger.info('Database initialized successfully')
    else:
        web_logger.warning('Database initialization reported failure')
    app.run(host=args.host, port=args.port, debug=args.debug)


if __name__ == '__main__':
    main()
