"""
PostgreSQL access for the portfolio content tables.

Every request opens its own connection (autocommit, dict rows) and closes it
on teardown, so each statement is a single all-or-nothing operation and no
state is shared between requests. SQL is composed with :mod:`psycopg.sql`
from the :class:`~portfolio.resources.Resource` description of each table.
"""
import json

import click
import psycopg
from flask import current_app, g
from flask.cli import with_appcontext
from psycopg import sql
from psycopg.rows import dict_row

from .resources import RESOURCES, Filter

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS profile_info (
        id SERIAL PRIMARY KEY,
        name TEXT NOT NULL,
        title TEXT NOT NULL,
        bio TEXT,
        email TEXT NOT NULL,
        phone TEXT,
        location TEXT,
        github_url TEXT,
        linkedin_url TEXT,
        twitter_url TEXT,
        website_title TEXT,
        website_description TEXT,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS projects (
        id SERIAL PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT,
        image TEXT,
        technologies TEXT[] NOT NULL DEFAULT '{}',
        github_url TEXT,
        demo_url TEXT,
        category TEXT,
        featured BOOLEAN NOT NULL DEFAULT FALSE,
        stars INTEGER NOT NULL DEFAULT 0,
        display_order INTEGER NOT NULL DEFAULT 0,
        is_published BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS experience (
        id SERIAL PRIMARY KEY,
        company TEXT NOT NULL,
        position TEXT NOT NULL,
        description TEXT,
        technologies TEXT[] NOT NULL DEFAULT '{}',
        start_date DATE,
        end_date DATE,
        is_current BOOLEAN NOT NULL DEFAULT FALSE,
        display_order INTEGER NOT NULL DEFAULT 0,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS education (
        id SERIAL PRIMARY KEY,
        institution TEXT NOT NULL,
        degree TEXT NOT NULL,
        field_of_study TEXT,
        description TEXT,
        start_date DATE,
        end_date DATE,
        gpa NUMERIC(4, 2),
        achievements TEXT[] NOT NULL DEFAULT '{}',
        display_order INTEGER NOT NULL DEFAULT 0,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS tech_stack (
        id SERIAL PRIMARY KEY,
        name TEXT NOT NULL,
        icon TEXT,
        category TEXT NOT NULL,
        description TEXT,
        proficiency INTEGER NOT NULL DEFAULT 80,
        display_order INTEGER NOT NULL DEFAULT 0,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS services (
        id SERIAL PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT,
        icon TEXT,
        price TEXT,
        features TEXT[] NOT NULL DEFAULT '{}',
        display_order INTEGER NOT NULL DEFAULT 0,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS blog_posts (
        id SERIAL PRIMARY KEY,
        title TEXT NOT NULL,
        slug TEXT NOT NULL UNIQUE,
        excerpt TEXT,
        content TEXT,
        image TEXT,
        category TEXT,
        tags TEXT[] NOT NULL DEFAULT '{}',
        status TEXT NOT NULL DEFAULT 'published',
        published_at TIMESTAMPTZ,
        read_time INTEGER NOT NULL DEFAULT 5,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS testimonials (
        id SERIAL PRIMARY KEY,
        name TEXT NOT NULL,
        position TEXT,
        company TEXT,
        content TEXT NOT NULL,
        avatar TEXT,
        rating INTEGER NOT NULL DEFAULT 5,
        is_featured BOOLEAN NOT NULL DEFAULT FALSE,
        display_order INTEGER NOT NULL DEFAULT 0,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS contact_submissions (
        id SERIAL PRIMARY KEY,
        name TEXT NOT NULL,
        email TEXT NOT NULL,
        subject TEXT,
        message TEXT NOT NULL,
        ip_address TEXT,
        user_agent TEXT,
        status TEXT NOT NULL DEFAULT 'new',
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS site_settings (
        id SERIAL PRIMARY KEY,
        key TEXT NOT NULL UNIQUE,
        value TEXT,
        type TEXT NOT NULL DEFAULT 'string',
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS admin_users (
        id SERIAL PRIMARY KEY,
        username TEXT NOT NULL UNIQUE,
        password_hash TEXT NOT NULL,
        last_login TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    );
    """,
]

TABLES = ["profile_info", "projects", "experience", "education", "tech_stack",
          "services", "blog_posts", "testimonials", "contact_submissions",
          "site_settings", "admin_users"]


def connect(conn_str):
    """Open an autocommit connection that returns rows as dicts.

    :param conn_str: libpq connection string or URL.
    :type conn_str: str
    :rtype: psycopg.Connection
    """
    return psycopg.connect(conn_str, autocommit=True, row_factory=dict_row)


def get_db():
    """Return the connection for the current request, opening it on first use."""
    if "db" not in g:
        g.db = connect(current_app.config["DATABASE_URI"])
    return g.db


def close_db(exc=None):  # pylint: disable=unused-argument
    conn = g.pop("db", None)
    if conn is not None:
        conn.close()


def execute_query(conn, query, params=None, fetch="all"):
    """Execute a composed SQL query and return its rows.

    :param conn: Database connection object for executing the query.
    :type conn: psycopg.Connection
    :param query: Composed query with ``%s`` placeholders.
    :type query: psycopg.sql.Composable
    :param params: Values bound to the placeholders.
    :type params: list or None
    :param fetch: ``"all"`` for every row, ``"one"`` for the first row, ``"none"`` for the row count.
    :type fetch: str
    :returns: List of dict rows, a single dict row (or ``None``), or a row count.
    """
    with conn.cursor() as cur:
        cur.execute(query, params or [])
        if fetch == "one":
            return cur.fetchone()
        if fetch == "none":
            return cur.rowcount
        return cur.fetchall()


class PgRepository:
    """CRUD operations for one :class:`~portfolio.resources.Resource` table."""

    def __init__(self, conn, resource):
        self.conn = conn
        self.resource = resource
        self.table = sql.Identifier(resource.table)

    def _visible(self, params):
        flag = self.resource.flag
        if flag is None:
            return sql.SQL("TRUE")
        params.append(flag.visible)
        return sql.SQL("{} = %s").format(sql.Identifier(flag.column))

    def _order_by(self):
        if not self.resource.order:
            return sql.SQL("")
        keys = sql.SQL(", ").join(
            sql.SQL("{} {}").format(
                sql.Identifier(key.column),
                sql.SQL("DESC NULLS LAST" if key.descending else "ASC NULLS LAST"),
            )
            for key in self.resource.order
        )
        return sql.SQL(" ORDER BY {}").format(keys)

    @staticmethod
    def _filter_clause(list_filter, value, params):
        column = sql.Identifier(list_filter.column)
        if list_filter.kind == Filter.FLAG:
            return sql.SQL("{} = TRUE").format(column)
        params.append(value)
        if list_filter.kind == Filter.CONTAINS:
            return sql.SQL("%s = ANY({})").format(column)
        return sql.SQL("{} = %s").format(column)

    def list(self, filters=(), limit=None):
        """Return visible rows narrowed by ``(filter, value)`` pairs, in resource order."""
        params = []
        clauses = [self._visible(params)]
        for list_filter, value in filters:
            clauses.append(self._filter_clause(list_filter, value, params))
        query = sql.SQL("SELECT * FROM {table} WHERE {where}{order}").format(
            table=self.table,
            where=sql.SQL(" AND ").join(clauses),
            order=self._order_by(),
        )
        if limit:
            query = query + sql.SQL(" LIMIT %s")
            params.append(limit)
        return execute_query(self.conn, query, params)

    def get(self, record_id):
        return self.get_by("id", record_id)

    def get_by(self, column, value):
        params = []
        visible = self._visible(params)
        params.append(value)
        query = sql.SQL("SELECT * FROM {table} WHERE {visible} AND {column} = %s LIMIT 1").format(
            table=self.table, visible=visible, column=sql.Identifier(column))
        return execute_query(self.conn, query, params, fetch="one")

    def latest(self):
        params = []
        query = sql.SQL(
            "SELECT * FROM {table} WHERE {visible} ORDER BY {created} DESC LIMIT 1"
        ).format(table=self.table, visible=self._visible(params),
                 created=sql.Identifier("created_at"))
        return execute_query(self.conn, query, params, fetch="one")

    def count(self):
        params = []
        query = sql.SQL("SELECT COUNT(*) AS count FROM {table} WHERE {visible}").format(
            table=self.table, visible=self._visible(params))
        return execute_query(self.conn, query, params, fetch="one")["count"]

    def create(self, values):
        """Insert a prepared record and return it with its id and timestamps."""
        values = dict(values)
        flag = self.resource.flag
        if flag is not None and flag.column not in values:
            values[flag.column] = flag.visible
        columns = list(values)
        query = sql.SQL("INSERT INTO {table} ({columns}) VALUES ({values}) RETURNING *").format(
            table=self.table,
            columns=sql.SQL(", ").join(map(sql.Identifier, columns)),
            values=sql.SQL(", ").join([sql.Placeholder()] * len(columns)),
        )
        return execute_query(self.conn, query, [values[c] for c in columns], fetch="one")

    def update(self, record_id, values):
        """Rewrite every editable column of a record (full replace).

        Soft-deleted rows are left untouched, so an update can never bring
        one back even when the flag is itself an editable column.

        :returns: The updated row, or ``None`` when no live row has that id.
        """
        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(column)) for column in values
        )
        params = list(values.values()) + [record_id]
        live = sql.SQL("")
        flag = self.resource.flag
        if flag is not None:
            live = sql.SQL(" AND {} IS DISTINCT FROM %s").format(sql.Identifier(flag.column))
            params.append(flag.hidden)
        query = sql.SQL(
            "UPDATE {table} SET {assignments}, updated_at = CURRENT_TIMESTAMP "
            "WHERE id = %s{live} RETURNING *"
        ).format(table=self.table, assignments=assignments, live=live)
        return execute_query(self.conn, query, params, fetch="one")

    def soft_delete(self, record_id):
        """Hide a record by writing the hidden value to its flag column.

        :returns: Whether a row with that id exists.
        :rtype: bool
        """
        flag = self.resource.flag
        query = sql.SQL(
            "UPDATE {table} SET {flag} = %s, updated_at = CURRENT_TIMESTAMP WHERE id = %s"
        ).format(table=self.table, flag=sql.Identifier(flag.column))
        return execute_query(self.conn, query, [flag.hidden, record_id], fetch="none") > 0


def get_repository(resource):
    """Return the repository serving ``resource`` for the current request.

    ``REPOSITORY_FACTORY`` in the app config replaces the PostgreSQL
    repository, which is how the test-suite runs without a database.
    """
    factory = current_app.config.get("REPOSITORY_FACTORY")
    if factory is not None:
        return factory(resource)
    return PgRepository(get_db(), resource)


def record_login(username):
    """Stamp ``admin_users.last_login`` for a successful login."""
    query = sql.SQL("UPDATE {} SET last_login = CURRENT_TIMESTAMP WHERE username = %s").format(
        sql.Identifier("admin_users"))
    execute_query(get_db(), query, [username], fetch="none")


def setup_database(db_conn_str):
    """Create every content table if it does not already exist.

    :param db_conn_str: Database connection string for establishing the connection.
    :type db_conn_str: str
    """
    with connect(db_conn_str) as conn:
        with conn.cursor() as cur:
            for statement in SCHEMA:
                cur.execute(statement)


def load_initial_json_data(file_path, db_conn_str):
    """Create records from a JSON file of ``{resource_name: [record, ...]}``.

    Records go through the same validation and defaults as the admin API.
    Unknown resource names are skipped.

    :param file_path: Path to the JSON content file.
    :type file_path: str
    :param db_conn_str: Database connection string for establishing the connection.
    :type db_conn_str: str
    :returns: Number of records created per resource name.
    :rtype: dict
    """
    with open(file_path, "r", encoding="utf-8") as f:
        content = json.load(f)

    created = {}
    with connect(db_conn_str) as conn:
        for name, records in content.items():
            resource = RESOURCES.get(name)
            if resource is None:
                continue
            repository = PgRepository(conn, resource)
            for record in records:
                repository.create(resource.prepare(record))
            created[name] = len(records)
    return created


@click.command("init-db")
@with_appcontext
def init_db_command():
    """Create the content tables."""
    setup_database(current_app.config["DATABASE_URI"])
    click.echo("Database tables are ready.")


@click.command("load-data")
@with_appcontext
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
def load_data_command(file_path):
    """Load content records from a JSON file."""
    try:
        created = load_initial_json_data(file_path, current_app.config["DATABASE_URI"])
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Error decoding JSON: {e}") from e
    for name, count in created.items():
        click.echo(f"{name}: added {count} record(s).")


def init_app(app):
    app.teardown_appcontext(close_db)
    app.cli.add_command(init_db_command)
    app.cli.add_command(load_data_command)
