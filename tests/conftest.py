"""Test configuration and fixtures for pytest test suite.

Most tests run the app against :class:`InMemoryStore`, a repository that
honours the same contract as :class:`portfolio.db.PgRepository` (visibility
flag, filters, sort order, soft delete). Tests marked ``db`` run against a
real PostgreSQL test database and are skipped when none is reachable.
"""
import os
from datetime import datetime, timedelta, timezone

import psycopg
import pytest
from werkzeug.security import generate_password_hash

from portfolio import create_app
from portfolio.auth import issue_token
from portfolio.resources import RESOURCES, Filter

ADMIN_PASSWORD = "s3cret-pass"
JWT_SECRET = "test-jwt-secret"
BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


class InMemoryRepository:
    """Repository over a list of dict rows held by :class:`InMemoryStore`."""

    def __init__(self, store, resource):
        self.store = store
        self.resource = resource

    @property
    def rows(self):
        if self.resource.name in self.store.broken:
            raise psycopg.OperationalError("Simulated database outage")
        return self.store.tables.setdefault(self.resource.table, [])

    def _visible(self, row):
        flag = self.resource.flag
        return flag is None or row.get(flag.column) == flag.visible

    @staticmethod
    def _matches(row, list_filter, value):
        cell = row.get(list_filter.column)
        if list_filter.kind == Filter.FLAG:
            return cell is True
        if list_filter.kind == Filter.CONTAINS:
            return value in (cell or [])
        return cell == value

    def _ordered(self, rows):
        for key in reversed(self.resource.order):
            present = [row for row in rows if row.get(key.column) is not None]
            missing = [row for row in rows if row.get(key.column) is None]
            present.sort(key=lambda row, column=key.column: row[column], reverse=key.descending)
            rows = present + missing
        return rows

    def list(self, filters=(), limit=None):
        rows = [row for row in self.rows if self._visible(row)]
        for list_filter, value in filters:
            rows = [row for row in rows if self._matches(row, list_filter, value)]
        rows = self._ordered(rows)
        if limit:
            rows = rows[:limit]
        return [dict(row) for row in rows]

    def get(self, record_id):
        return self.get_by("id", record_id)

    def get_by(self, column, value):
        for row in self.rows:
            if self._visible(row) and row.get(column) == value:
                return dict(row)
        return None

    def latest(self):
        rows = [row for row in self.rows if self._visible(row)]
        if not rows:
            return None
        return dict(max(rows, key=lambda row: (row["created_at"], row["id"])))

    def count(self):
        return len([row for row in self.rows if self._visible(row)])

    def create(self, values):
        rows = self.rows
        row = dict(values)
        flag = self.resource.flag
        if flag is not None and flag.column not in row:
            row[flag.column] = flag.visible
        self.store.last_id += 1
        row["id"] = self.store.last_id
        row["created_at"] = BASE_TIME + timedelta(seconds=self.store.last_id)
        row["updated_at"] = row["created_at"]
        rows.append(row)
        return dict(row)

    def _deleted(self, row):
        flag = self.resource.flag
        return flag is not None and row.get(flag.column) == flag.hidden

    def update(self, record_id, values):
        for row in self.rows:
            if row["id"] == record_id and not self._deleted(row):
                row.update(values)
                row["updated_at"] = row["updated_at"] + timedelta(seconds=1)
                return dict(row)
        return None

    def soft_delete(self, record_id):
        for row in self.rows:
            if row["id"] == record_id:
                row[self.resource.flag.column] = self.resource.flag.hidden
                return True
        return False


class InMemoryStore:
    def __init__(self):
        self.tables = {}
        self.broken = set()
        self.last_id = 0

    def repository(self, resource):
        return InMemoryRepository(self, resource)

    def seed(self, resource_name, **payload):
        """Create a record through the resource's validation and defaults."""
        resource = RESOURCES[resource_name]
        return self.repository(resource).create(resource.prepare(payload))

    def raw_rows(self, resource_name):
        return self.tables.get(RESOURCES[resource_name].table, [])


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def app(store):  # pylint: disable=redefined-outer-name
    """Create a Flask app wired to the in-memory store.

    :param store: The store backing every repository.
    :type store: InMemoryStore
    :rtype: flask.Flask
    """
    return create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret-key",
        "JWT_SECRET": JWT_SECRET,
        "ADMIN_USERNAME": "admin",
        "ADMIN_PASSWORD_HASH": generate_password_hash(ADMIN_PASSWORD),
        "REPOSITORY_FACTORY": store.repository,
    })


@pytest.fixture
def client(app):  # pylint: disable=redefined-outer-name
    return app.test_client()


@pytest.fixture(autouse=True)
def no_login_bookkeeping(mocker):
    """Keep successful logins from touching ``admin_users`` in a real database."""
    return mocker.patch("portfolio.db.record_login")


@pytest.fixture
def token():
    return issue_token("admin", JWT_SECRET)


@pytest.fixture
def auth_headers(token):  # pylint: disable=redefined-outer-name
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def seeded(store):  # pylint: disable=redefined-outer-name
    """Provide a store pre-populated with a small, consistent content set."""
    store.seed("profile", name="Ada Example", title="Full-Stack Developer",
               email="ada@example.com", bio="Builds things.",
               github_url="https://github.com/ada")
    store.seed("site-settings", key="show_blog", value="true", type="boolean")
    store.seed("site-settings", key="max_projects", value="6", type="number")
    store.seed("site-settings", key="socials", value='{"x": "@ada"}', type="json")
    store.seed("site-settings", key="tagline", value="Hello", type="string")

    store.seed("projects", title="Compiler", description="A toy compiler",
               technologies=["Python", "LLVM"], category="tools", featured=True, stars=40)
    store.seed("projects", title="Web Shop", description="Online store",
               technologies=["Flask", "PostgreSQL"], category="web", featured=True, stars=12)
    store.seed("projects", title="Chat", description="Realtime chat",
               technologies=["Python", "WebSockets"], category="web", featured=False, stars=90)
    store.seed("projects", title="Game", description="Tiny platformer",
               technologies=["Godot"], category="games", featured=True, stars=12)

    store.seed("tech-stack", name="Python", category="backend", proficiency=95)
    store.seed("tech-stack", name="React", category="frontend")
    store.seed("tech-stack", name="PostgreSQL", category="database", proficiency=85)

    store.seed("experience", company="Acme", position="Engineer",
               start_date="2021-03-01", is_current=True)
    store.seed("experience", company="Initech", position="Intern",
               start_date="2019-06-01", end_date="2019-09-01")
    store.seed("education", institution="State University", degree="BSc",
               field_of_study="Computer Science", start_date="2015-09-01")
    store.seed("services", name="Consulting", price="$100/h", features=["Reviews"])

    store.seed("blog-posts", title="Hello Flask", slug="hello-flask",
               excerpt="Getting started", content="First.\n\nSecond.",
               tags=["python", "flask"], published_at="2025-03-01T10:00:00+00:00")
    store.seed("blog-posts", title="SQL Tips", slug="sql-tips", excerpt="Queries",
               tags=["sql"], published_at="2025-04-01T10:00:00+00:00")
    store.seed("blog-posts", title="Draft Post", slug="draft-post", status="draft",
               published_at="2025-05-01T10:00:00+00:00")

    store.seed("testimonials", name="Grace", company="Navy", content="Great work",
               is_featured=True, display_order=1)
    store.seed("testimonials", name="Linus", content="Solid code", display_order=2)
    return store


def _pg_connection_strings():
    if os.getenv("GITHUB_ACTIONS"):
        base = "user=postgres password=postgres host=localhost port=5432"
    else:
        base = os.getenv("TEST_DATABASE_BASE", "user=postgres")
    return f"dbname=postgres {base}", f"dbname=test_portfolio {base}"


@pytest.fixture(scope="session")
def test_db():
    """Create and tear down a PostgreSQL test database for the session.

    Skips every dependent test when no server is reachable.

    :yields: The connection string for the newly created test database.
    :rtype: str
    """
    from portfolio.db import setup_database  # pylint: disable=import-outside-toplevel

    default_conn_str, test_conn_str = _pg_connection_strings()
    try:
        with psycopg.connect(default_conn_str, autocommit=True, connect_timeout=3) as conn:
            conn.execute("DROP DATABASE IF EXISTS test_portfolio WITH (FORCE)")
            conn.execute("CREATE DATABASE test_portfolio")
    except psycopg.OperationalError as e:
        pytest.skip(f"PostgreSQL is not available: {e}")

    setup_database(test_conn_str)
    yield test_conn_str

    with psycopg.connect(default_conn_str, autocommit=True) as conn:
        conn.execute("DROP DATABASE test_portfolio WITH (FORCE)")


@pytest.fixture
def db_session(test_db):  # pylint: disable=redefined-outer-name
    """Provide a connection to an emptied test database.

    :yields: A database connection object.
    :rtype: psycopg.Connection
    """
    from portfolio.db import TABLES, connect  # pylint: disable=import-outside-toplevel

    conn = connect(test_db)
    try:
        conn.execute("TRUNCATE TABLE " + ", ".join(TABLES) + " RESTART IDENTITY CASCADE")
        yield conn
    finally:
        conn.close()


@pytest.fixture
def pg_client(test_db, db_session):  # pylint: disable=redefined-outer-name,unused-argument
    flask_app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret-key",
        "JWT_SECRET": JWT_SECRET,
        "DATABASE_URI": test_db,
        "ADMIN_PASSWORD_HASH": generate_password_hash(ADMIN_PASSWORD),
    })
    return flask_app.test_client()


@pytest.fixture
def admin_password():
    return ADMIN_PASSWORD


@pytest.fixture
def jwt_secret():
    return JWT_SECRET
