"""Achievement rules and evaluation."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Iterable, List, NamedTuple

from pomoquest.core.exceptions import UnknownAchievementError
from pomoquest.gamification.levels import round_half_up


class AchievementCategory(str, Enum):
    """Which statistic an achievement is measured against."""
    SESSIONS = "sessions"
    STREAK = "streak"
    TOTAL_MINUTES = "total_minutes"
    LEVEL = "level"
    TOTAL_DAYS = "total_days"
    TOTAL_SESSIONS = "total_sessions"
    SPECIAL_ACTION = "special_action"
    GAME_SCORE = "game_score"
    TIME_OF_DAY = "time_of_day"
    TEAM_SESSIONS = "team_sessions"
    TEAM_MINUTES = "team_minutes"


@dataclass(frozen=True)
class Achievement:
    id: str
    name: str
    description: str
    category: AchievementCategory
    required_value: int
    reward: int
    secret: bool = False


class AchievementStats(NamedTuple):
    """Snapshot of the statistics achievement rules read."""
    focus_sessions: int = 0
    streak: int = 0
    total_minutes: int = 0
    level: int = 1
    total_days: int = 0
    total_sessions: int = 0
    played_games: int = 0
    game_play_count: int = 0
    best_game_score: int = 0
    character_level: int = 1
    distinct_character_types: int = 1
    team_sessions: int = 0
    team_minutes: int = 0


C = AchievementCategory

ACHIEVEMENTS: List[Achievement] = [
    # Focus sessions
    Achievement("first_session", "First Step", "Complete your first focus session", C.SESSIONS, 1, 50),
    Achievement("focus_beginner", "Tomato Fan", "Complete 10 focus sessions", C.SESSIONS, 10, 100),
    Achievement("focus_adept", "Focus Adept", "Complete 25 focus sessions", C.SESSIONS, 25, 150),
    Achievement("focus_master", "Focus Master", "Complete 100 focus sessions", C.SESSIONS, 100, 500),
    Achievement("focus_legend", "Focus Legend", "Complete 500 focus sessions", C.SESSIONS, 500, 1000),

    # Streaks
    Achievement("streak_starter", "Budding Habit", "Keep a 3 day streak", C.STREAK, 3, 75),
    Achievement("week_warrior", "Week Warrior", "Keep a 7 day streak", C.STREAK, 7, 150),
    Achievement("consistency_pro", "Consistency Pro", "Keep a 14 day streak", C.STREAK, 14, 300),
    Achievement("monthly_champion", "Monthly Champion", "Keep a 30 day streak", C.STREAK, 30, 500),
    Achievement("streak_legend", "Unbroken", "Keep a 100 day streak", C.STREAK, 100, 1500),

    # Minutes
    Achievement("first_hour", "First Hour", "Log 60 minutes", C.TOTAL_MINUTES, 60, 50),
    Achievement("time_keeper", "Time Keeper", "Log 1000 minutes", C.TOTAL_MINUTES, 1000, 300),
    Achievement("time_wizard", "Time Wizard", "Log 3000 minutes", C.TOTAL_MINUTES, 3000, 600),
    Achievement("time_lord", "Time Lord", "Log 10000 minutes", C.TOTAL_MINUTES, 10000, 1500),

    # Levels
    Achievement("level_5", "Growing Up", "Reach level 5", C.LEVEL, 5, 100),
    Achievement("level_10", "Seasoned", "Reach level 10", C.LEVEL, 10, 200),
    Achievement("level_20", "Legend", "Reach level 20", C.LEVEL, 20, 1000),
    Achievement("level_50", "Mythic", "Reach level 50", C.LEVEL, 50, 3000),

    # Active days
    Achievement("active_week", "Regular", "Be active on 7 different days", C.TOTAL_DAYS, 7, 100),
    Achievement("active_month", "Dedicated", "Be active on 30 different days", C.TOTAL_DAYS, 30, 300),
    Achievement("active_season", "Devoted", "Be active on 100 different days", C.TOTAL_DAYS, 100, 800),

    # All sessions including breaks
    Achievement("session_starter", "Warming Up", "Complete 5 sessions of any kind", C.TOTAL_SESSIONS, 5, 50),
    Achievement("session_regular", "Rhythm", "Complete 50 sessions of any kind", C.TOTAL_SESSIONS, 50, 200),
    Achievement("session_veteran", "Veteran", "Complete 250 sessions of any kind", C.TOTAL_SESSIONS, 250, 600),

    # Mini-game scores
    Achievement("high_scorer", "High Scorer", "Score 100 in any mini-game", C.GAME_SCORE, 100, 100),
    Achievement("score_master", "Score Master", "Score 500 in any mini-game", C.GAME_SCORE, 500, 300),

    # Special actions
    Achievement("game_explorer", "Game Explorer", "Play 3 different mini-games", C.SPECIAL_ACTION, 3, 100),
    Achievement("game_enthusiast", "Game Enthusiast", "Play 7 different mini-games", C.SPECIAL_ACTION, 7, 200),
    Achievement("game_addict", "Game Addict", "Play mini-games 50 times", C.SPECIAL_ACTION, 50, 300),
    Achievement("first_evolution", "Metamorphosis", "Evolve your character once", C.SPECIAL_ACTION, 2, 150),
    Achievement("evolution_master", "Final Form", "Reach the final character form", C.SPECIAL_ACTION, 5, 1000),
    Achievement("diverse_path", "Many Paths", "Evolve through 3 different types", C.SPECIAL_ACTION, 3, 300),
    Achievement("star_achiever", "Star Achiever", "Unlock 5 achievements", C.SPECIAL_ACTION, 5, 100),
    Achievement("achievement_hunter", "Achievement Hunter", "Unlock 15 achievements", C.SPECIAL_ACTION, 15, 300),
    Achievement("achievement_collector", "Collector", "Unlock 30 achievements", C.SPECIAL_ACTION, 30, 800),

    # Time of day
    Achievement("night_owl", "Night Owl", "Finish a session after 10pm", C.TIME_OF_DAY, 1, 50, secret=True),
    Achievement("early_bird", "Early Bird", "Finish a session before 6am", C.TIME_OF_DAY, 1, 50, secret=True),
    Achievement("weekend_warrior", "Weekend Warrior", "Finish a session on a weekend", C.TIME_OF_DAY, 1, 50),
    Achievement("morning_routine", "Morning Routine", "Finish a session between 6 and 9am", C.TIME_OF_DAY, 1, 50),
    Achievement("lunch_break_hero", "Lunch Break Hero", "Finish a session between 12 and 1pm", C.TIME_OF_DAY, 1, 50),
    Achievement("evening_scholar", "Evening Scholar", "Finish a session between 5 and 8pm", C.TIME_OF_DAY, 1, 50),

    # Team sessions
    Achievement("first_team_session", "Team Debut", "Complete a team session", C.TEAM_SESSIONS, 1, 100),
    Achievement("team_player", "Team Player", "Complete 5 team sessions", C.TEAM_SESSIONS, 5, 150),
    Achievement("team_leader", "Team Leader", "Complete 20 team sessions", C.TEAM_SESSIONS, 20, 400),
    Achievement("team_champion", "Team Champion", "Complete 50 team sessions", C.TEAM_SESSIONS, 50, 800),
    Achievement("team_hour", "Team Hour", "Spend 60 minutes in team sessions", C.TEAM_MINUTES, 60, 100),
    Achievement("team_5_hours", "Team Marathon", "Spend 300 minutes in team sessions", C.TEAM_MINUTES, 300, 300),
    Achievement("team_master", "Team Master", "Spend 1000 minutes in team sessions", C.TEAM_MINUTES, 1000, 800),
]

ACHIEVEMENTS_BY_ID: Dict[str, Achievement] = {a.id: a for a in ACHIEVEMENTS}

# Categories scanned by evaluate(); the rest have their own entry points
STAT_CATEGORIES = {
    C.SESSIONS: lambda s: s.focus_sessions,
    C.STREAK: lambda s: s.streak,
    C.TOTAL_MINUTES: lambda s: s.total_minutes,
    C.LEVEL: lambda s: s.level,
    C.TOTAL_DAYS: lambda s: s.total_days,
    C.TOTAL_SESSIONS: lambda s: s.total_sessions,
    C.GAME_SCORE: lambda s: s.best_game_score,
}

# Special-action predicates: (stats, unlocked count so far) -> measured value
SPECIAL_ACTIONS: Dict[str, Callable[[AchievementStats, int], int]] = {
    "game_explorer": lambda s, unlocked: s.played_games,
    "game_enthusiast": lambda s, unlocked: s.played_games,
    "game_addict": lambda s, unlocked: s.game_play_count,
    "first_evolution": lambda s, unlocked: s.character_level,
    "evolution_master": lambda s, unlocked: s.character_level,
    "diverse_path": lambda s, unlocked: s.distinct_character_types,
    "star_achiever": lambda s, unlocked: unlocked,
    "achievement_hunter": lambda s, unlocked: unlocked,
    "achievement_collector": lambda s, unlocked: unlocked,
}

TIME_OF_DAY_RULES: Dict[str, Callable[[datetime], bool]] = {
    "night_owl": lambda t: t.hour >= 22 or t.hour < 4,
    "early_bird": lambda t: t.hour < 6,
    "weekend_warrior": lambda t: t.weekday() >= 5,
    "morning_routine": lambda t: 6 <= t.hour < 9,
    "lunch_break_hero": lambda t: 12 <= t.hour < 13,
    "evening_scholar": lambda t: 17 <= t.hour < 20,
}


def get_achievement(achievement_id: str) -> Achievement:
    try:
        return ACHIEVEMENTS_BY_ID[achievement_id]
    except KeyError:
        raise UnknownAchievementError(f"Unknown achievement: {achievement_id}")


def evaluate(stats: AchievementStats, unlocked: Iterable[str]) -> List[str]:
    """Return ids of stat and special-action rules newly satisfied.

    Rules are checked in table order. Unlocks earlier in the pass count
    towards the achievement-count rules later in the same pass.
    """
    already = set(unlocked)
    unlocked_count = len(already)
    newly_unlocked = []

    for achievement in ACHIEVEMENTS:
        if achievement.id in already:
            continue

        if achievement.category in STAT_CATEGORIES:
            value = STAT_CATEGORIES[achievement.category](stats)
        elif achievement.category == C.SPECIAL_ACTION and achievement.id in SPECIAL_ACTIONS:
            value = SPECIAL_ACTIONS[achievement.id](stats, unlocked_count)
        else:
            continue

        if value >= achievement.required_value:
            newly_unlocked.append(achievement.id)
            already.add(achievement.id)
            unlocked_count += 1

    return newly_unlocked


def evaluate_time_of_day(occurred_at: datetime, unlocked: Iterable[str]) -> List[str]:
    """Calendar and clock achievements for a session finished at ``occurred_at``."""
    already = set(unlocked)
    return [
        achievement_id for achievement_id, rule in TIME_OF_DAY_RULES.items()
        if achievement_id not in already and rule(occurred_at)
    ]


def evaluate_team(team_sessions: int, team_minutes: int, unlocked: Iterable[str]) -> List[str]:
    already = set(unlocked)
    newly_unlocked = []

    for achievement in ACHIEVEMENTS:
        if achievement.id in already:
            continue
        if achievement.category == C.TEAM_SESSIONS:
            value = team_sessions
        elif achievement.category == C.TEAM_MINUTES:
            value = team_minutes
        else:
            continue
        if value >= achievement.required_value:
            newly_unlocked.append(achievement.id)

    return newly_unlocked


def achievement_reward(achievement_id: str, boost_percent: int = 0) -> int:
    """XP granted for unlocking, scaled by achievement-boost abilities."""
    reward = get_achievement(achievement_id).reward
    if boost_percent:
        return round_half_up(reward * (1 + boost_percent / 100))
    return reward
