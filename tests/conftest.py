"""
Pytest configuration and fixtures.

This file is automatically loaded by pytest and provides
shared fixtures for all tests.
"""

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from pickem.db.models import Base
from pickem.parsed_draw import ParsedDraw
from pickem.services.admin import finalize_match, set_active_round
from pickem.services.auth import create_or_update_user
from pickem.services.draw_ingestion import commit_draw
from pickem.services.picks import PickInput, submit_round_picks

ADMIN_ID = "admin-1"


@pytest.fixture(scope="session")
def test_engine():
    """
    Create a test database engine.

    Uses SQLite in-memory for fast tests that don't need
    PostgreSQL-specific features. pysqlite's own transaction handling is
    switched off so SAVEPOINTs (session.begin_nested) behave.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


@pytest.fixture(scope="session")
def tables(test_engine):
    """
    Create all tables for testing.

    This fixture runs once per test session.
    """
    Base.metadata.create_all(test_engine)
    yield
    Base.metadata.drop_all(test_engine)


@pytest.fixture
def db_session(test_engine, tables):
    """
    Create a database session for a test.

    Each test gets its own session with automatic rollback,
    ensuring tests don't affect each other.
    """
    connection = test_engine.connect()
    transaction = connection.begin()

    session = Session(bind=connection, join_transaction_mode="create_savepoint")

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def admin(db_session):
    return create_or_update_user(db_session, ADMIN_ID, "Admin", role="admin")


@pytest.fixture
def users(db_session):
    """Three regular players, created in order alice, bob, carol."""
    return [
        create_or_update_user(db_session, user_id, name)
        for user_id, name in (("alice", "Alice"), ("bob", "Bob"), ("carol", "Carol"))
    ]


def make_draw_payload(name="Test Open"):
    """
    A 3-round, 8-player draw with one bye:

        R1: 1 Sinner (1) v Bye, 2 Ruud v Fritz (8), 3 Draper v Paul, 4 Rune v Alcaraz (2)
        R2: two TBD semis
        R3: TBD final
    """
    return {
        "tournamentName": name,
        "rounds": [
            {
                "roundNumber": 1,
                "name": "Quarter Finals",
                "matches": [
                    {"matchNumber": 1, "player1Name": "Sinner", "player1Seed": 1, "player2Name": "Bye"},
                    {"matchNumber": 2, "player1Name": "Ruud", "player2Name": "Fritz", "player2Seed": 8},
                    {"matchNumber": 3, "player1Name": "Draper", "player2Name": "Paul"},
                    {"matchNumber": 4, "player1Name": "Rune", "player2Name": "Alcaraz", "player2Seed": 2},
                ],
            },
            {
                "roundNumber": 2,
                "name": "Semi Finals",
                "matches": [{"matchNumber": 1}, {"matchNumber": 2}],
            },
            {
                "roundNumber": 3,
                "name": "Final",
                "matches": [{"matchNumber": 1}],
            },
        ],
    }


@pytest.fixture
def draw_payload():
    return make_draw_payload()


@pytest.fixture
def tournament(db_session, admin, draw_payload):
    """A committed best-of-3 draw from make_draw_payload."""
    draw = ParsedDraw.from_dict(draw_payload)
    result = commit_draw(db_session, draw, year=2025, actor_id=ADMIN_ID)
    return result.tournament

@pytest.fixture
def round1(db_session, admin, tournament):
    """Round 1 of the tournament fixture, made active."""
    set_active_round(db_session, tournament.id, 1, actor_id=admin.id)
    return tournament.rounds[0]


@pytest.fixture
def submit(db_session):
    """
    Submit final picks for a user.

        submit("alice", round_, {2: ("Ruud", 2, 1), 3: ("Paul", 2, 0)})

    Keys are match numbers within the round.
    """
    def _submit(user_id, round_, picks):
        by_number = {m.match_number: m for m in round_.matches}
        return submit_round_picks(
            db_session,
            user_id,
            round_.id,
            [
                PickInput(by_number[number].id, winner, sets_won, sets_lost)
                for number, (winner, sets_won, sets_lost) in picks.items()
            ],
        )
    return _submit


@pytest.fixture
def finalize(db_session, admin):
    """Finalize a match by round and match number as the admin."""
    def _finalize(round_, match_number, winner, sets_won, sets_lost, is_retirement=False):
        match = next(m for m in round_.matches if m.match_number == match_number)
        return finalize_match(
            db_session,
            match.id,
            winner,
            f"{sets_won}-{sets_lost}",
            sets_won,
            sets_lost,
            is_retirement,
            actor_id=admin.id,
        )
    return _finalize
