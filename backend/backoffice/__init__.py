from flask import Flask, g
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager, unset_jwt_cookies
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from typing import Optional, Dict, Any
import logging

from .config.settings import load_settings
from .errors import BackofficeError

db_engine = None
SessionLocal = None
jwt = JWTManager()


def _configure_logging(level_name: str):
    level = getattr(logging, str(level_name).upper(), logging.INFO)
    logging.basicConfig(level=level, format='%(asctime)s %(levelname)s [%(name)s] %(message)s')
    logging.getLogger('backoffice').setLevel(level)


def _make_engine(db_url: str, echo: bool = False):
    if db_url.endswith(':memory:'):
        # one shared connection, otherwise every session sees its own empty database
        return create_engine(db_url, echo=echo, connect_args={'check_same_thread': False}, poolclass=StaticPool)
    if db_url.startswith('sqlite'):
        return create_engine(db_url, echo=echo, connect_args={'check_same_thread': False})
    return create_engine(db_url, echo=echo, pool_pre_ping=True)


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    app.config.update(load_settings())

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    _configure_logging(app.config['LOG_LEVEL'])

    db_engine = _make_engine(app.config['DATABASE_URL'], app.config.get('SQL_ECHO', False))
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    jwt.init_app(app)

    from .services.identity import load_request_principal

    # Every request resolves its principal once; the gate decorators read g.principal
    app.before_request(load_request_principal)

    @app.after_request
    def clear_stale_session(resp):
        if g.get('clear_session'):
            unset_jwt_cookies(resp)
        return resp

    # Work a request did not commit (aborted validation, raised errors) is
    # discarded so a later commit on this thread cannot persist it
    @app.teardown_request
    def discard_uncommitted(exc):
        SessionLocal.rollback()

    @app.teardown_appcontext
    def release_session(exc):
        SessionLocal.remove()

    from .routes.auth import auth_bp
    from .routes.iam import iam_bp
    from .routes.brands import brands_bp
    from .routes.categories import categories_bp
    from .routes.faqs import faqs_bp
    app.register_blueprint(auth_bp)
    app.register_blueprint(iam_bp, url_prefix='/iam')
    app.register_blueprint(brands_bp, url_prefix='/brands')
    app.register_blueprint(categories_bp, url_prefix='/categories')
    app.register_blueprint(faqs_bp, url_prefix='/faqs')

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

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
            return payload, e.code
        if isinstance(e, BackofficeError):
            if e.status >= 500:
                app.logger.error('%s: %s', type(e).__name__, e.detail)
            return e.to_payload(), e.status
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
