import json

import pytest
from werkzeug.security import check_password_hash


@pytest.mark.cli
def test_init_db_command(app, mocker):
    """Test that ``flask init-db`` creates the tables in the configured database.

    :param app: The Flask application fixture.
    :type app: flask.Flask
    :param mocker: The pytest-mock fixture for mocking objects.
    :type mocker: pytest_mock.MockerFixture
    """
    mock_setup = mocker.patch("portfolio.db.setup_database")

    result = app.test_cli_runner().invoke(args=["init-db"])

    assert result.exit_code == 0
    assert "Database tables are ready." in result.output
    mock_setup.assert_called_once_with(app.config["DATABASE_URI"])


@pytest.mark.cli
def test_load_data_command_reports_counts(app, mocker, tmp_path):
    """Test that ``flask load-data`` reports how many records each section added.

    :param app: The Flask application fixture.
    :type app: flask.Flask
    :param mocker: The pytest-mock fixture for mocking objects.
    :type mocker: pytest_mock.MockerFixture
    :param tmp_path: Temporary directory for the content file.
    :type tmp_path: pathlib.Path
    """
    data_file = tmp_path / "content.json"
    data_file.write_text(json.dumps({"projects": [{"title": "A"}, {"title": "B"}]}))
    mock_load = mocker.patch("portfolio.db.load_initial_json_data",
                             return_value={"projects": 2})

    result = app.test_cli_runner().invoke(args=["load-data", str(data_file)])

    assert result.exit_code == 0
    assert "projects: added 2 record(s)." in result.output
    mock_load.assert_called_once_with(str(data_file), app.config["DATABASE_URI"])


@pytest.mark.cli
def test_load_data_command_rejects_bad_json(app, tmp_path):
    """Test that a malformed content file fails the command before any database work.

    :param app: The Flask application fixture.
    :type app: flask.Flask
    :param tmp_path: Temporary directory for the content file.
    :type tmp_path: pathlib.Path
    """
    data_file = tmp_path / "content.json"
    data_file.write_text("{not json")

    result = app.test_cli_runner().invoke(args=["load-data", str(data_file)])

    assert result.exit_code != 0
    assert "Error decoding JSON" in result.output


@pytest.mark.cli
@pytest.mark.auth
def test_hash_password_command(app):
    """Test that ``flask hash-password`` prints a hash that verifies the password.

    :param app: The Flask application fixture.
    :type app: flask.Flask
    """
    result = app.test_cli_runner().invoke(args=["hash-password"], input="hunter2\nhunter2\n")

    assert result.exit_code == 0
    password_hash = result.output.strip().splitlines()[-1]
    assert check_password_hash(password_hash, "hunter2")
