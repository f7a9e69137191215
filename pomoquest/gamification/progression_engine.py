"""Progression aggregator.

Every change to a user's progression goes through ``ProgressionEngine``:
the client applies it optimistically, and the ``/api/sessions`` endpoint
applies the same rules to the server-held copy. All methods are pure; they
take a ``ProgressionState`` and return a new one together with the
notifications the UI should present, in the order they happened.
"""

from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple

import structlog

from pomoquest.core.exceptions import UnknownAbilityError, UnknownGameError
from pomoquest.gamification import achievements as achievement_rules
from pomoquest.gamification.evolution import (
    AbilityType,
    active_abilities,
    boost_percent,
    character_abilities,
    character_exp_for_session,
    has_ability_type,
    resolve_character,
    try_evolve,
)
from pomoquest.gamification.games import DEFAULT_GAME_IDS, GAMES, check_unlocks
from pomoquest.gamification.levels import apply_xp, calculate_session_xp, reduce_xp, xp_threshold
from pomoquest.gamification.streaks import protection_available, update_streak, within_protection_window
from pomoquest.models.progression import (
    CharacterType,
    Notification,
    NotificationKind,
    ProgressionState,
    RemoteSessionResult,
    SessionEvent,
    SessionType,
)

logger = structlog.get_logger()

EngineResult = Tuple[ProgressionState, List[Notification]]


def new_progression_state(user_id: str) -> ProgressionState:
    """Fresh state for a user: level 1, starter character, default games."""
    path = (CharacterType.BALANCED,)
    return ProgressionState(
        user_id=user_id,
        character_evolution_path=path,
        character_level=1,
        active_ability_ids=resolve_character(path, 1).ability_ids,
        unlocked_game_ids=DEFAULT_GAME_IDS,
    )


class _Draft:
    """Mutable working copy of a state plus the notifications it produced."""

    def __init__(self, state: ProgressionState):
        self.data: Dict[str, Any] = state.model_dump()
        for key in (
            "unlocked_achievement_ids", "character_evolution_path", "active_ability_ids",
            "played_game_ids", "unlocked_game_ids",
        ):
            self.data[key] = list(self.data[key])
        self.data["game_high_scores"] = dict(self.data["game_high_scores"])
        self.notifications: List[Notification] = []

    def __getitem__(self, key):
        return self.data[key]

    def __setitem__(self, key, value):
        self.data[key] = value

    def notify(self, kind: NotificationKind, **payload):
        self.notifications.append(Notification(kind=kind, payload=payload))

    def abilities(self):
        return active_abilities(
            self.data["character_evolution_path"],
            self.data["character_level"],
            self.data["active_ability_ids"],
        )

    def stats(self) -> achievement_rules.AchievementStats:
        d = self.data
        return achievement_rules.AchievementStats(
            focus_sessions=d["focus_sessions"],
            streak=d["streak"],
            total_minutes=d["total_minutes"],
            level=d["level"],
            total_days=d["total_active_days"],
            total_sessions=d["total_sessions"],
            played_games=len(d["played_game_ids"]),
            game_play_count=d["game_play_count"],
            best_game_score=max(d["game_high_scores"].values(), default=0),
            character_level=d["character_level"],
            distinct_character_types=len(set(d["character_evolution_path"])),
            team_sessions=d["team_sessions_completed"],
            team_minutes=d["team_session_minutes"],
        )

    def build(self) -> EngineResult:
        return ProgressionState.model_validate(self.data), self.notifications


class ProgressionEngine:
    """Applies the XP, streak, evolution and achievement rules."""

    def on_session_completed(self, state: ProgressionState, event: Any) -> EngineResult:
        """Apply one completed timer session.

        Order matters, later steps read the counters earlier steps updated:
        session XP, streak and active days, character evolution, achievement
        scan (plus clock-based achievements), team achievements, then one
        extra scan for unlocks caused by achievement rewards.
        """
        event = SessionEvent.parse(event)
        draft = _Draft(state)
        abilities = draft.abilities()
        today = event.occurred_at.date()

        # 1. Session XP
        session_xp = calculate_session_xp(event, boost_percent(abilities, AbilityType.XP_BOOST))
        self._grant_xp(draft, session_xp, source="session")
        draft["total_sessions"] += 1
        draft["total_minutes"] += event.duration_minutes
        if event.session_type == SessionType.FOCUS:
            draft["focus_sessions"] += 1

        # 2. Streak and active days
        self._update_streak(draft, today, has_ability_type(abilities, AbilityType.STREAK_PROTECTION))

        # 3. Character evolution
        draft["character_exp"] += character_exp_for_session(event.duration_minutes)
        self._try_evolve(draft)

        # 4. Achievements
        unlocked = achievement_rules.evaluate(draft.stats(), draft["unlocked_achievement_ids"])
        unlocked += achievement_rules.evaluate_time_of_day(
            event.occurred_at, draft["unlocked_achievement_ids"] + unlocked
        )
        self._unlock(draft, unlocked)

        # 5. Team sessions
        if event.is_team_session:
            draft["team_sessions_completed"] += 1
            draft["team_session_minutes"] += event.duration_minutes
            self._unlock(draft, achievement_rules.evaluate_team(
                draft["team_sessions_completed"],
                draft["team_session_minutes"],
                draft["unlocked_achievement_ids"],
            ))

        # Single extra pass: rewards may have raised the level or the
        # achievement count. Anything this pass causes waits for the next event.
        self._unlock(draft, achievement_rules.evaluate(draft.stats(), draft["unlocked_achievement_ids"]))

        self._unlock_games(draft)

        new_state, notifications = draft.build()
        logger.debug(
            "Session applied",
            user_id=state.user_id,
            session_type=event.session_type.value,
            xp_earned=session_xp,
            level=new_state.level,
            notifications=len(notifications),
        )
        return new_state, notifications

    def session_xp(self, state: ProgressionState, event: Any) -> int:
        """XP the session itself is worth for this user, before achievement rewards."""
        event = SessionEvent.parse(event)
        abilities = active_abilities(state.character_evolution_path, state.character_level, state.active_ability_ids)
        return calculate_session_xp(event, boost_percent(abilities, AbilityType.XP_BOOST))

    def record_game_play(
        self,
        state: ProgressionState,
        game_id: str,
        score: int = 0
    ) -> EngineResult:
        """Count a mini-game play and keep the best score."""
        if game_id not in GAMES:
            raise UnknownGameError(f"Unknown game: {game_id}")

        draft = _Draft(state)
        if game_id not in draft["played_game_ids"]:
            draft["played_game_ids"].append(game_id)
        draft["game_play_count"] += 1
        scores = draft["game_high_scores"]
        scores[game_id] = max(scores.get(game_id, 0), max(0, score))

        self._unlock(draft, achievement_rules.evaluate(draft.stats(), draft["unlocked_achievement_ids"]))
        self._unlock_games(draft)
        return draft.build()

    def add_xp(self, state: ProgressionState, amount: int) -> EngineResult:
        """Grant XP directly (developer tooling)."""
        draft = _Draft(state)
        self._grant_xp(draft, amount, source="manual")
        self._unlock(draft, achievement_rules.evaluate(draft.stats(), draft["unlocked_achievement_ids"]))
        self._unlock_games(draft)
        return draft.build()

    def reduce_xp(self, state: ProgressionState, amount: int) -> ProgressionState:
        """Remove XP (developer tooling). Achievements are never revoked."""
        result = reduce_xp(state.level, state.xp, amount)
        return state.model_copy(update={"level": result.new_level, "xp": result.new_xp})

    def unlock_achievement(self, state: ProgressionState, achievement_id: str) -> EngineResult:
        """Unlock one achievement by id and grant its reward (developer tooling)."""
        achievement_rules.get_achievement(achievement_id)
        draft = _Draft(state)
        self._unlock(draft, [achievement_id])
        self._unlock_games(draft)
        return draft.build()

    def toggle_ability(self, state: ProgressionState, ability_id: str, active: bool) -> ProgressionState:
        granted = {a.id for a in character_abilities(state.character_evolution_path, state.character_level)}
        if ability_id not in granted:
            raise UnknownAbilityError(f"Ability {ability_id} is not available to the current character")

        ids = [a for a in state.active_ability_ids if a != ability_id]
        if active:
            ids.append(ability_id)
        return state.model_copy(update={"active_ability_ids": tuple(ids)})

    def reset_progress(self, state: ProgressionState) -> ProgressionState:
        """User-initiated reset, the only operation that clears achievements."""
        logger.info("Progress reset", user_id=state.user_id)
        return new_progression_state(state.user_id)

    def apply_remote_result(self, state: ProgressionState, result: RemoteSessionResult) -> EngineResult:
        """Overwrite level, XP and streak with the server's values.

        The server is authoritative for those fields. The achievement set is
        merged instead, since it only ever grows.
        """
        draft = _Draft(state)

        level, xp = result.new_level, result.current_xp
        if xp >= xp_threshold(level):
            normalized = apply_xp(level, 0, xp)
            level, xp = normalized.new_level, normalized.new_xp

        if (level, xp) != (state.level, state.xp):
            logger.info(
                "Remote result overrides local progression",
                user_id=state.user_id,
                local_level=state.level,
                local_xp=state.xp,
                remote_level=level,
                remote_xp=xp,
            )

        draft["level"] = level
        draft["xp"] = xp
        draft["streak"] = result.streak
        draft["longest_streak"] = max(draft["longest_streak"], result.streak)

        for achievement_id in result.unlocked_achievements:
            if achievement_id not in draft["unlocked_achievement_ids"]:
                draft["unlocked_achievement_ids"].append(achievement_id)
                draft.notify(NotificationKind.ACHIEVEMENT_UNLOCKED, achievement_id=achievement_id, reward=0)

        self._unlock_games(draft)
        return draft.build()

    def _grant_xp(self, draft: _Draft, amount: int, source: str):
        if amount <= 0:
            return
        previous_level = draft["level"]
        result = apply_xp(draft["level"], draft["xp"], amount)
        draft["level"] = result.new_level
        draft["xp"] = result.new_xp
        draft["total_xp_earned"] += amount

        if result.did_level_up:
            draft.notify(
                NotificationKind.LEVEL_UP,
                previous_level=previous_level,
                level=result.new_level,
                levels_gained=result.levels_gained,
                source=source,
            )

    def _update_streak(self, draft: _Draft, today: date, has_protection_ability: bool):
        last_active: Optional[date] = draft["last_active_date"]
        can_protect = protection_available(draft["streak_protection_used_on"], today, has_protection_ability)

        new_streak = update_streak(last_active, draft["streak"], today, can_protect)
        if can_protect and last_active is not None and within_protection_window(last_active, today):
            draft["streak_protection_used_on"] = today
            logger.info("Streak protection used", user_id=draft["user_id"], streak=new_streak)

        if last_active is None or last_active < today:
            draft["total_active_days"] += 1
            draft["last_active_date"] = today

        draft["streak"] = new_streak
        draft["longest_streak"] = max(draft["longest_streak"], new_streak)

    def _try_evolve(self, draft: _Draft):
        previous_level = draft["character_level"]
        result = try_evolve(
            draft["character_evolution_path"],
            previous_level,
            draft["character_exp"],
            total_sessions=draft["total_sessions"],
            streak=draft["streak"],
            total_days=draft["total_active_days"],
        )
        draft["character_exp"] = result.new_exp
        if not result.evolved:
            return

        draft["character_level"] = result.new_level
        draft["character_evolution_path"] = list(result.new_path)

        character = resolve_character(result.new_path, result.new_level)
        for ability_id in character.ability_ids:
            if ability_id not in draft["active_ability_ids"]:
                draft["active_ability_ids"].append(ability_id)

        draft.notify(
            NotificationKind.CHARACTER_EVOLVED,
            previous_level=previous_level,
            level=result.new_level,
            character_type=result.new_path[-1].value,
            character_id=character.id,
            character_name=character.name,
        )

    def _unlock(self, draft: _Draft, achievement_ids: Iterable[str]):
        for achievement_id in achievement_ids:
            if achievement_id in draft["unlocked_achievement_ids"]:
                continue
            achievement = achievement_rules.get_achievement(achievement_id)
            reward = achievement_rules.achievement_reward(
                achievement_id,
                boost_percent(draft.abilities(), AbilityType.ACHIEVEMENT_BOOST),
            )
            draft["unlocked_achievement_ids"].append(achievement_id)
            draft.notify(
                NotificationKind.ACHIEVEMENT_UNLOCKED,
                achievement_id=achievement_id,
                name=achievement.name,
                reward=reward,
            )
            self._grant_xp(draft, reward, source=f"achievement:{achievement_id}")

    def _unlock_games(self, draft: _Draft):
        for game_id in check_unlocks(draft["level"], draft["unlocked_achievement_ids"], draft["unlocked_game_ids"]):
            draft["unlocked_game_ids"].append(game_id)
            draft.notify(NotificationKind.GAME_UNLOCKED, game_id=game_id, name=GAMES[game_id].name)


engine = ProgressionEngine()
