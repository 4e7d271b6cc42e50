import pytest
from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError, OperationalError

from database import with_db, with_db_critical


class RecordingSession:
    def __init__(self):
        self.rollbacks = 0
        self.closed = False

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        self.closed = True


@pytest.fixture
def sleeps(monkeypatch):
    delays = []
    monkeypatch.setattr("utils.error_recovery.time.sleep", delays.append)
    return delays


def _dropped_connection():
    return OperationalError("SELECT 1", {}, Exception("server closed the connection unexpectedly"))


def test_operational_error_rolls_back_and_retries(sleeps):
    session = RecordingSession()
    attempts = []

    def load(db):
        attempts.append(db)
        if len(attempts) == 1:
            raise _dropped_connection()
        return "rows"

    assert with_db(load, session=session) == "rows"
    assert attempts == [session, session]
    assert session.rollbacks == 1
    assert sleeps == [1.0]
    assert not session.closed


@pytest.mark.parametrize(
    "error",
    [
        HTTPException(status_code=404, detail="Activity not found"),
        IntegrityError("INSERT INTO users", {}, Exception("UNIQUE constraint failed")),
    ],
)
def test_non_transient_errors_propagate_on_first_attempt(sleeps, error):
    session = RecordingSession()
    attempts = []

    def write(db):
        attempts.append(db)
        raise error

    with pytest.raises(type(error)):
        with_db(write, session=session)
    assert len(attempts) == 1
    assert session.rollbacks == 0
    assert sleeps == []


def test_critical_profile_makes_five_attempts(sleeps):
    session = RecordingSession()
    attempts = []

    def write(db):
        attempts.append(db)
        raise _dropped_connection()

    with pytest.raises(OperationalError):
        with_db_critical(write, session=session)
    assert len(attempts) == 5
    assert session.rollbacks == 4
    assert sleeps == [2.0, 4.0, 8.0, 16.0]


def test_private_session_is_closed(monkeypatch, sleeps):
    session = RecordingSession()
    monkeypatch.setattr("database.session.SessionLocal", lambda: session)

    assert with_db(lambda db: db is session) is True
    assert session.closed
