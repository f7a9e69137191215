"""Unit tests for the progression aggregator."""

import pytest

from pomoquest.core.exceptions import SessionValidationError, UnknownAbilityError, UnknownGameError
from pomoquest.gamification.progression_engine import new_progression_state
from pomoquest.models.progression import (
    CharacterType,
    NotificationKind,
    RemoteSessionResult,
)
from tests.helpers import TODAY, at, day, make_state, session


def kinds(notifications):
    return [n.kind for n in notifications]


class TestNewState:

    def test_fresh_user(self):
        state = new_progression_state("user-1")
        assert (state.level, state.xp, state.streak) == (1, 0, 0)
        assert state.character_evolution_path == (CharacterType.BALANCED,)
        assert set(state.active_ability_ids) == {"basic_timer", "basic_xp"}
        assert set(state.unlocked_game_ids) == {"tap_target", "word_scramble"}


class TestSessionScenarios:
    """End-to-end session application."""

    def test_focus_session_levels_up_with_carry(self, engine):
        """Level 1 with 90 XP plus a 54 XP focus session lands on level 2 with 44."""
        state = make_state(level=1, xp=90, unlocked_achievement_ids=("first_session",))

        new_state, notifications = engine.on_session_completed(state, session(minutes=25))

        assert (new_state.level, new_state.xp) == (2, 44)
        assert kinds(notifications) == [NotificationKind.LEVEL_UP]
        assert notifications[0].payload["level"] == 2

    def test_consecutive_day_extends_streak(self, engine):
        state = make_state(last_active_date=day(-1), streak=5, longest_streak=5, total_active_days=5)

        new_state, _ = engine.on_session_completed(state, session())

        assert new_state.streak == 6
        assert new_state.longest_streak == 6
        assert new_state.last_active_date == TODAY
        assert new_state.total_active_days == 6

    def test_gap_without_protection_resets_streak(self, engine):
        state = make_state(last_active_date=day(-3), streak=10, longest_streak=10)

        new_state, _ = engine.on_session_completed(state, session())

        assert new_state.streak == 1
        assert new_state.longest_streak == 10

    def test_team_session_multiplier_and_counters(self, engine):
        state = make_state()
        event = session("long_break", 30, is_team_session=True, team_size=4)

        assert engine.session_xp(state, event) == 70
        new_state, _ = engine.on_session_completed(state, event)

        assert new_state.team_sessions_completed == 1
        assert new_state.team_session_minutes == 30
        assert "first_team_session" in new_state.unlocked_achievement_ids
        # 70 session XP + 100 for the team achievement
        assert new_state.total_xp_earned == 170
        assert (new_state.level, new_state.xp) == (2, 70)

    def test_achievement_reward_can_level_up_in_same_call(self, engine):
        state = make_state(
            focus_sessions=9,
            total_sessions=9,
            unlocked_achievement_ids=("first_session", "session_starter"),
        )

        new_state, notifications = engine.on_session_completed(state, session(minutes=25))

        assert "focus_beginner" in new_state.unlocked_achievement_ids
        assert (new_state.level, new_state.xp) == (2, 54)
        assert kinds(notifications) == [NotificationKind.ACHIEVEMENT_UNLOCKED, NotificationKind.LEVEL_UP]
        assert notifications[1].payload["source"] == "achievement:focus_beginner"

    def test_input_state_is_not_mutated(self, engine):
        state = make_state()
        engine.on_session_completed(state, session())
        assert state.total_sessions == 0
        assert state.unlocked_achievement_ids == ()


class TestSessionCounters:

    def test_breaks_do_not_count_as_focus_sessions(self, engine):
        new_state, _ = engine.on_session_completed(make_state(), session("short_break", 5))
        assert new_state.total_sessions == 1
        assert new_state.focus_sessions == 0
        assert "first_session" not in new_state.unlocked_achievement_ids

    def test_second_session_same_day_keeps_streak_and_days(self, engine):
        state, _ = engine.on_session_completed(make_state(), session(occurred_at=at(0, hour=9)))
        state, _ = engine.on_session_completed(state, session(occurred_at=at(0, hour=11)))
        assert state.streak == 1
        assert state.total_active_days == 1
        assert state.total_sessions == 2

    def test_time_of_day_achievement(self, engine):
        new_state, _ = engine.on_session_completed(make_state(), session(occurred_at=at(0, hour=23)))
        assert "night_owl" in new_state.unlocked_achievement_ids

    def test_starter_xp_ability_boosts_session(self, engine):
        state = new_progression_state("user-1")
        assert engine.session_xp(state, session(minutes=25)) == 57


class TestValidation:

    def test_zero_duration_rejected(self, engine):
        with pytest.raises(SessionValidationError) as exc:
            engine.on_session_completed(make_state(), session(minutes=0))
        assert exc.value.field == "duration_minutes"

    def test_unknown_type_rejected(self, engine):
        with pytest.raises(SessionValidationError):
            engine.on_session_completed(make_state(), session("nap"))

    def test_team_size_without_team_flag_is_solo(self, engine):
        """A team size alone earns plain session XP and no team credit."""
        event = session(team_size=3)

        assert engine.session_xp(make_state(), event) == 54
        new_state, _ = engine.on_session_completed(make_state(), event)

        assert new_state.total_sessions == 1
        assert new_state.team_sessions_completed == 0
        assert "first_team_session" not in new_state.unlocked_achievement_ids


class TestStreakProtection:

    def protected_state(self, **overrides):
        fields = {
            "character_evolution_path": (CharacterType.CONSISTENT, CharacterType.CONSISTENT),
            "character_level": 2,
            "active_ability_ids": ("consistent_streak",),
        }
        fields.update(overrides)
        return make_state(**fields)

    def test_one_missed_day_is_forgiven(self, engine):
        state = self.protected_state(last_active_date=day(-2), streak=10, longest_streak=10)

        new_state, _ = engine.on_session_completed(state, session())

        assert new_state.streak == 11
        assert new_state.streak_protection_used_on == TODAY

    def test_protection_is_once_per_week(self, engine):
        state = self.protected_state(last_active_date=day(-2), streak=10, longest_streak=10)
        state, _ = engine.on_session_completed(state, session(occurred_at=at(0)))
        state, _ = engine.on_session_completed(state, session(occurred_at=at(2)))

        assert state.streak == 1
        assert state.streak_protection_used_on == TODAY

    def test_inactive_ability_does_not_protect(self, engine):
        state = self.protected_state(last_active_date=day(-2), streak=10, active_ability_ids=())
        new_state, _ = engine.on_session_completed(state, session())
        assert new_state.streak == 1


class TestCharacterEvolution:

    def test_session_fills_exp_and_evolves(self, engine):
        state = make_state(
            character_exp=495,
            total_sessions=30,
            focus_sessions=30,
            streak=2,
            total_active_days=5,
            last_active_date=TODAY,
            unlocked_achievement_ids=("first_session", "focus_beginner", "focus_adept"),
        )

        new_state, notifications = engine.on_session_completed(state, session(minutes=25))

        assert new_state.character_level == 2
        assert new_state.character_evolution_path == (CharacterType.BALANCED, CharacterType.FOCUSED)
        assert new_state.character_exp == 0
        assert "focused_flow_state" in new_state.active_ability_ids
        assert NotificationKind.CHARACTER_EVOLVED in kinds(notifications)
        assert "first_evolution" in new_state.unlocked_achievement_ids


class TestGames:

    def test_play_records_best_score(self, engine):
        state, _ = engine.record_game_play(make_state(), "tap_target", 120)
        state, _ = engine.record_game_play(state, "tap_target", 40)

        assert state.game_high_scores["tap_target"] == 120
        assert state.game_play_count == 2
        assert state.played_game_ids == ("tap_target",)
        assert "high_scorer" in state.unlocked_achievement_ids

    def test_unknown_game(self, engine):
        with pytest.raises(UnknownGameError):
            engine.record_game_play(make_state(), "chess", 10)

    def test_level_unlocks_game(self, engine):
        new_state, notifications = engine.add_xp(make_state(), 650)
        assert new_state.level == 4
        assert "memory_match" in new_state.unlocked_game_ids
        assert NotificationKind.GAME_UNLOCKED in kinds(notifications)


class TestDeveloperOperations:

    def test_add_xp_counts_towards_total(self, engine):
        new_state, notifications = engine.add_xp(make_state(), 150)
        assert (new_state.level, new_state.xp, new_state.total_xp_earned) == (2, 50, 150)
        assert kinds(notifications) == [NotificationKind.LEVEL_UP]

    def test_reduce_xp_keeps_achievements(self, engine):
        state = make_state(level=3, xp=10, unlocked_achievement_ids=("first_session",))
        new_state = engine.reduce_xp(state, 50)
        assert (new_state.level, new_state.xp) == (2, 160)
        assert new_state.unlocked_achievement_ids == ("first_session",)

    def test_unlock_achievement_grants_reward(self, engine):
        new_state, notifications = engine.unlock_achievement(make_state(), "first_session")
        assert new_state.xp == 50
        assert notifications[0].payload["reward"] == 50

    def test_toggle_ability(self, engine):
        state = engine.toggle_ability(make_state(), "basic_xp", True)
        assert state.active_ability_ids == ("basic_xp",)
        state = engine.toggle_ability(state, "basic_xp", False)
        assert state.active_ability_ids == ()

    def test_toggle_ability_not_granted(self, engine):
        with pytest.raises(UnknownAbilityError):
            engine.toggle_ability(make_state(), "consistent_streak", True)

    def test_reset_is_the_only_way_to_lose_achievements(self, engine):
        state = make_state(level=5, unlocked_achievement_ids=("first_session", "level_5"))
        new_state = engine.reset_progress(state)
        assert new_state.level == 1
        assert new_state.unlocked_achievement_ids == ()
        assert new_state.user_id == state.user_id


class TestRemoteReconciliation:

    def test_server_values_overwrite_local(self, engine):
        state = make_state(level=2, xp=44, streak=1, longest_streak=1)
        result = RemoteSessionResult(
            xp_earned=54, leveled_up=True, new_level=3, current_xp=10, streak=4,
            unlocked_achievements=("first_session",)
        )

        new_state, notifications = engine.apply_remote_result(state, result)

        assert (new_state.level, new_state.xp, new_state.streak) == (3, 10, 4)
        assert new_state.longest_streak == 4
        assert "first_session" in new_state.unlocked_achievement_ids
        assert notifications[0].payload == {"achievement_id": "first_session", "reward": 0}

    def test_achievements_are_merged_not_replaced(self, engine):
        state = make_state(unlocked_achievement_ids=("night_owl",))
        result = RemoteSessionResult(xp_earned=0, leveled_up=False, new_level=1, current_xp=0, streak=1)

        new_state, notifications = engine.apply_remote_result(state, result)

        assert new_state.unlocked_achievement_ids == ("night_owl",)
        assert notifications == []

    def test_overflowing_remote_xp_is_normalized(self, engine):
        result = RemoteSessionResult(xp_earned=0, leveled_up=False, new_level=2, current_xp=250, streak=1)
        new_state, _ = engine.apply_remote_result(make_state(), result)
        assert (new_state.level, new_state.xp) == (3, 50)


class TestInvariants:
    """Properties that hold across long sequences of operations."""

    def test_xp_stays_below_threshold_and_achievements_only_grow(self, engine):
        state = new_progression_state("user-1")
        previous = set()
        types = ["focus", "short_break", "focus", "long_break"]

        for i in range(120):
            event = session(types[i % 4], minutes=5 + (i * 7) % 60, occurred_at=at(i // 3, hour=6 + i % 16))
            state, _ = engine.on_session_completed(state, event)
            if i % 10 == 0:
                state, _ = engine.record_game_play(state, "tap_target", i * 5)

            assert state.level >= 1
            assert state.xp < state.xp_to_next_level
            assert previous <= set(state.unlocked_achievement_ids)
            previous = set(state.unlocked_achievement_ids)

        assert state.total_sessions == 120
