"""
tests/test_leaderboard_service.py — Scores, Positions & Ranking Queries
========================================================================

Uses an in-memory SQLite database via the shared conftest fixtures.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from conftest import make_tenant, make_user
from sqlalchemy import event, select
from sqlalchemy.orm import Session

from t4g.config import POLICY_IGNORE, T4GConfig
from t4g.database.models import ActionType, AdminLog, Challenge, LeaderboardEntry, UserChallenge
from t4g.engine.locks import rank_lock
from t4g.services import leaderboard_service, reward_service

NOW = datetime(2026, 10, 21, 12, 0, tzinfo=UTC)


def _seed(engine, scores: dict[str, int]) -> None:
    """Create users and give each ``score`` SCAN actions, in dict order."""
    for uid in scores:
        make_user(engine, uid)
    for uid, n in scores.items():
        for _ in range(n):
            reward_service.log_action(engine, uid, "SCAN", now=NOW)


def _positions(engine) -> dict[str, int]:
    return {
        e["userId"]: e["position"]
        for e in leaderboard_service.get_leaderboard(engine, limit=100)
    }


class TestRanking:
    def test_higher_score_has_better_position(self, db_engine):
        _seed(db_engine, {"user_a": 2, "user_b": 5, "user_c": 3})
        assert _positions(db_engine) == {"user_b": 1, "user_c": 2, "user_a": 3}

    def test_page_is_ordered_and_decorated(self, db_engine):
        _seed(db_engine, {"user_a": 1, "user_b": 2})
        page = leaderboard_service.get_leaderboard(db_engine, limit=10, offset=0)
        assert [e["userId"] for e in page] == ["user_b", "user_a"]
        assert page[0]["name"] == "User B"
        assert page[0]["totalScore"] == 2

    def test_offset_skips_entries(self, db_engine):
        _seed(db_engine, {"user_a": 3, "user_b": 2, "user_c": 1})
        page = leaderboard_service.get_leaderboard(db_engine, limit=1, offset=1)
        assert [e["userId"] for e in page] == ["user_b"]

    def test_ties_keep_earlier_holder_ahead(self, db_engine):
        _seed(db_engine, {"user_a": 2, "user_b": 2})
        assert _positions(db_engine) == {"user_a": 1, "user_b": 2}
        # user_b catches up from behind then pulls level again: order is kept
        reward_service.log_action(db_engine, "user_a", "SCAN", now=NOW)
        reward_service.log_action(db_engine, "user_b", "SCAN", now=NOW)
        assert _positions(db_engine) == {"user_a": 1, "user_b": 2}

    def test_overtaking_changes_positions(self, db_engine):
        _seed(db_engine, {"user_a": 2, "user_b": 1})
        reward_service.log_action(db_engine, "user_b", "SCAN", now=NOW)
        reward_service.log_action(db_engine, "user_b", "SCAN", now=NOW)
        assert _positions(db_engine) == {"user_b": 1, "user_a": 2}

    def test_entry_is_only_written_under_the_rank_lock(self, db_engine):
        # A writer must not hold its entry row while queueing for the re-rank
        seen = []

        def record(session, flush_context, instances):
            if any(isinstance(o, LeaderboardEntry) for o in (*session.new, *session.dirty)):
                seen.append(rank_lock.locked())

        event.listen(Session, "before_flush", record)
        try:
            _seed(db_engine, {"user_a": 1, "user_b": 2})
        finally:
            event.remove(Session, "before_flush", record)
        assert seen
        assert all(seen)


class TestPointQueries:
    def test_position_and_score(self, db_engine):
        _seed(db_engine, {"user_a": 4, "user_b": 1})
        assert leaderboard_service.get_position(db_engine, "user_b") == 2
        assert leaderboard_service.get_user_score(db_engine, "user_a") == {
            "totalScore": 4, "position": 1,
        }

    def test_unknown_user(self, db_engine):
        assert leaderboard_service.get_position(db_engine, "nobody") is None
        assert leaderboard_service.get_user_score(db_engine, "nobody") == {
            "totalScore": 0, "position": None,
        }


class TestAround:
    def test_mid_table_returns_full_window(self, db_engine):
        # 15 users with distinct scores 15..1
        _seed(db_engine, {f"user_{i:02d}": 15 - i for i in range(15)})
        middle = "user_07"  # position 8
        entries = leaderboard_service.get_around_user(db_engine, middle, 3)
        assert len(entries) == 2 * 3 + 1
        assert [e["position"] for e in entries] == list(range(5, 12))

    def test_near_top_is_clamped(self, db_engine):
        _seed(db_engine, {f"user_{i:02d}": 10 - i for i in range(10)})
        entries = leaderboard_service.get_around_user(db_engine, "user_01", 5)
        assert [e["position"] for e in entries] == list(range(1, 8))

    def test_unranked_user_gets_top_of_board(self, db_engine):
        _seed(db_engine, {f"user_{i:02d}": 10 - i for i in range(10)})
        entries = leaderboard_service.get_around_user(db_engine, "stranger", 2)
        assert [e["position"] for e in entries] == [1, 2, 3, 4]


class TestAggregates:
    def test_top_by_action(self, db_engine):
        _seed(db_engine, {"user_a": 1, "user_b": 0})
        for _ in range(3):
            reward_service.log_action(db_engine, "user_b", "GAME", now=NOW)
        reward_service.log_action(db_engine, "user_a", "GAME", now=NOW)

        top = leaderboard_service.top_by_action(db_engine, ActionType.GAME, limit=10)
        assert top == [
            {"rank": 1, "userId": "user_b", "name": "User B", "actionType": "GAME", "count": 3},
            {"rank": 2, "userId": "user_a", "name": "User A", "actionType": "GAME", "count": 1},
        ]

    def test_top_by_action_without_actions_is_empty(self, db_engine):
        assert leaderboard_service.top_by_action(db_engine, ActionType.SHARE) == []

    def test_stats(self, db_engine):
        _seed(db_engine, {"user_a": 1, "user_b": 2, "user_c": 4})
        assert leaderboard_service.get_stats(db_engine) == {
            "totalUsers": 3, "averageScore": 2.33, "topScore": 4,
        }

    def test_stats_on_empty_board(self, db_engine):
        assert leaderboard_service.get_stats(db_engine) == {
            "totalUsers": 0, "averageScore": 0.0, "topScore": 0,
        }

    def test_reset_clears_scores_and_positions(self, db_engine):
        _seed(db_engine, {"user_a": 2, "user_b": 1})
        assert leaderboard_service.reset_leaderboard(db_engine, actor_id="user_admin") == 2
        assert leaderboard_service.get_leaderboard(db_engine) == []
        assert leaderboard_service.get_user_score(db_engine, "user_a") == {
            "totalScore": 0, "position": None,
        }
        with Session(db_engine) as session:
            assert session.scalar(
                select(AdminLog.actor_id).where(AdminLog.action_type == "RESET_LEADERBOARD")
            ) == "user_admin"


class TestChallengePoints:
    @pytest.fixture
    def completed(self, db_engine):
        """user_a: 2 coins + a completed 10-point challenge."""
        _seed(db_engine, {"user_a": 2})
        make_tenant(db_engine, "tenant_1")
        with Session(db_engine) as session:
            session.add(Challenge(
                id="challenge_1", organization_id="org_1", title="Scan week",
                type="weekly", difficulty="easy", points=10,
                start_date=NOW, end_date=NOW + timedelta(days=7),
                rules=[], rewards=[], created_by="tenant_1",
            ))
            session.add(UserChallenge(user_id="user_a", challenge_id="challenge_1", completed=True))
            session.commit()
        return db_engine

    def test_completed_challenge_points_count(self, completed):
        with Session(completed) as session:
            assert leaderboard_service.compute_score(session, "user_a") == 12

    def test_ignore_policy_leaves_points_out(self, completed):
        with Session(completed) as session:
            assert leaderboard_service.compute_score(
                session, "user_a", policy=POLICY_IGNORE
            ) == 2

    def test_rescore_persists_new_total(self, completed):
        assert reward_service.rescore_user(completed, "user_a") == 12
        assert reward_service.rescore_user(
            completed, "user_a", config=T4GConfig(challenge_points_policy=POLICY_IGNORE)
        ) == 2
