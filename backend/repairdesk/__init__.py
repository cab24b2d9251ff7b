from flask import Flask, g
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import threading
import os

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()


class VersionCounter:
    """Monotonic counter shared by every request thread of one application."""

    def __init__(self):
        self._value = 0
        self._lock = threading.Lock()

    @property
    def value(self) -> int:
        return self._value

    def bump(self) -> int:
        with self._lock:
            self._value += 1
            return self._value


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'dev-secret')
    app.config['DATABASE_URL'] = os.getenv('DATABASE_URL', 'sqlite:///dev.db')
    app.config['LOGIN_URL'] = os.getenv('LOGIN_URL', '/auth')
    app.config['HOME_URL'] = os.getenv('HOME_URL', '/')

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    # Database
    db_url = app.config['DATABASE_URL']
    if db_url.endswith(':memory:'):
        # Ensure a single shared in-memory SQLite database across all sessions
        db_engine = create_engine(
            db_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        db_engine = create_engine(db_url, echo=False, future=True)
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    jwt.init_app(app)
    app.extensions['repairdesk'] = {'matrix_version': VersionCounter()}

    from .routes.iam import iam_bp
    from .routes.b2b import b2b_bp
    app.register_blueprint(iam_bp, url_prefix='/iam')
    app.register_blueprint(b2b_bp, url_prefix='/b2b')

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    @app.teardown_appcontext
    def dispose_access(exc):
        access = g.pop('access', None)
        if access is not None:
            access.dispose()
        # drop anything a failed request left pending in this thread's session
        SessionLocal.remove()

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, HTTPException):
            payload = {
                'error': {
                    'status': e.code,
                    'title': e.name,
                    'detail': e.description,
                }
            }
            # access errors carry navigation hints (login entry point, way back)
            payload['error'].update(getattr(e, 'extra', None) or {})
            return payload, e.code
        # Unhandled exception
        app.logger.exception('Unhandled exception')
        return {
            'error': {
                'status': 500,
                'title': 'Internal Server Error',
                'detail': 'Unexpected error'
            }
        }, 500

    return app


def get_db():
    return SessionLocal()


def matrix_version() -> VersionCounter:
    from flask import current_app
    return current_app.extensions['repairdesk']['matrix_version']
