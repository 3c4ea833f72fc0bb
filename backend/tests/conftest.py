import os, sys, pytest
# Ensure backend directory is on path so 'backoffice' and 'tests' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
import backoffice
from backoffice import create_app, get_db
from backoffice.models.authz import Base
# Import all model modules to ensure tables are registered before create_all
import backoffice.models.catalog  # noqa: F401
import backoffice.models.audit  # noqa: F401

TEST_CONFIG = {
    'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
    'TESTING': True,
    'JWT_SECRET_KEY': 'test-secret-key-with-enough-length-for-hs256',
    'JWT_COOKIE_CSRF_PROTECT': False,
    'MAX_LOGIN_ATTEMPTS': 3,
    'LOCK_TIME_MINUTES': 30,
    'LOG_LEVEL': 'WARNING',
}


@pytest.fixture(scope='session')
def app_instance():
    app = create_app(TEST_CONFIG)
    yield app


@pytest.fixture(autouse=True)
def fresh_schema(app_instance):
    # every test starts from an empty schema on the shared in-memory database
    backoffice.SessionLocal.remove()
    Base.metadata.drop_all(backoffice.db_engine)
    Base.metadata.create_all(backoffice.db_engine)
    with app_instance.app_context():
        yield
    backoffice.SessionLocal.remove()


@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()


@pytest.fixture()
def db():
    return get_db()
