import os, sys, pytest
# Ensure backend directory is on path so 'repairdesk' and 'tests' can be imported from a checkout
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
import repairdesk
from repairdesk import create_app, get_db
from repairdesk.models.authz import Base
import repairdesk.models.audit  # noqa: F401


@pytest.fixture(autouse=True)
def app_instance():
    # Fresh in-memory database per test; matrix version and signals start clean too
    app = create_app({'DATABASE_URL': 'sqlite+pysqlite:///:memory:', 'JWT_SECRET_KEY': 'test-secret'})
    with app.app_context():
        engine = get_db().get_bind()
        Base.metadata.create_all(engine)
    yield app
    repairdesk.SessionLocal.remove()


@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()


@pytest.fixture()
def auth_headers(app_instance):
    """Return a factory producing Bearer headers for a principal id."""
    from flask_jwt_extended import create_access_token

    def make(user_id):
        # Short-lived context: requests must push their own so g.access is per request
        with app_instance.app_context():
            token = create_access_token(identity=str(user_id))
        return {'Authorization': f'Bearer {token}'}
    return make
