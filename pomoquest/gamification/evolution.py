"""Character evolution: abilities, the character table and evolution rules."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, NamedTuple, Optional, Sequence, Tuple

from pomoquest.core.config import settings
from pomoquest.models.progression import CharacterType

BALANCED = CharacterType.BALANCED
FOCUSED = CharacterType.FOCUSED
CONSISTENT = CharacterType.CONSISTENT

MAX_CHARACTER_LEVEL = 5

# Fallback thresholds when the resolved character belongs to another level
EVOLUTION_EXP_BY_LEVEL: Dict[int, Optional[int]] = {1: 500, 2: 1000, 3: 1500, 4: 2000, 5: None}


class AbilityType(str, Enum):
    """What an ability modifies."""
    TIMER_BOOST = "timer_boost"
    XP_BOOST = "xp_boost"
    STREAK_PROTECTION = "streak_protection"
    FOCUS_ENHANCEMENT = "focus_enhancement"
    BREAK_TIME_REDUCTION = "break_time_reduction"
    GAME_SCORE_BOOST = "game_score_boost"
    ACHIEVEMENT_BOOST = "achievement_boost"
    SPECIAL_UNLOCK = "special_unlock"


@dataclass(frozen=True)
class Ability:
    id: str
    name: str
    description: str
    type: AbilityType
    value: int  # percent for boosts, a count otherwise


@dataclass(frozen=True)
class Character:
    id: str
    name: str
    description: str
    level: int
    evolution_path: Tuple[CharacterType, ...]
    next_evolution_exp: Optional[int]
    color: str
    abilities: Tuple[Ability, ...]

    @property
    def ability_ids(self) -> Tuple[str, ...]:
        return tuple(a.id for a in self.abilities)


def _ability(id, name, description, type, value):
    return Ability(id, name, description, type, value)


ABILITIES: Dict[str, Ability] = {a.id: a for a in [
    # Level 1
    _ability("basic_timer", "Basic Focus", "Timer effects +5%", AbilityType.TIMER_BOOST, 5),
    _ability("basic_xp", "Basic Growth", "Session XP +5%", AbilityType.XP_BOOST, 5),
    _ability("basic_focus", "Basic Concentration", "Focus session effects +5%", AbilityType.FOCUS_ENHANCEMENT, 5),
    # Balanced
    _ability("balanced_adaptability", "Adaptability", "All bonuses +10%", AbilityType.TIMER_BOOST, 10),
    _ability("balanced_versatility", "Versatility", "Mini-game scores +10%", AbilityType.GAME_SCORE_BOOST, 10),
    # Focused
    _ability("focused_deep_work", "Deep Work", "Focus session effects +20%", AbilityType.FOCUS_ENHANCEMENT, 20),
    _ability("focused_flow_state", "Flow State", "Session XP +15%", AbilityType.XP_BOOST, 15),
    # Consistent
    _ability(
        "consistent_streak", "Streak Guard",
        "One missed day does not break the streak (once per week)",
        AbilityType.STREAK_PROTECTION, 1
    ),
    _ability("consistent_habit", "Habit Master", "Session XP +20%", AbilityType.XP_BOOST, 20),
    # Level 3+
    _ability("advanced_achievement", "Achievement Hunter", "Achievement XP +25%", AbilityType.ACHIEVEMENT_BOOST, 25),
    _ability("advanced_game", "Game Master", "Mini-game scores +25%", AbilityType.GAME_SCORE_BOOST, 25),
    _ability("advanced_break", "Efficient Rest", "Breaks 15% shorter", AbilityType.BREAK_TIME_REDUCTION, 15),
    # Level 4+
    _ability("special_unlock", "Special Unlock", "Unlocks special mini-games", AbilityType.SPECIAL_UNLOCK, 1),
    _ability("special_time_warp", "Time Warp", "Log one past session per week", AbilityType.SPECIAL_UNLOCK, 1),
    # Signature abilities
    _ability("samurai_discipline", "Samurai Discipline", "Focus +5% per consecutive session, max 30%", AbilityType.FOCUS_ENHANCEMENT, 30),
    _ability(
        "phoenix_rebirth", "Phoenix Rebirth",
        "One missed day does not break the streak (once per week)",
        AbilityType.STREAK_PROTECTION, 1
    ),
    _ability("kitsune_wisdom", "Kitsune Wisdom", "Achievement XP +50%", AbilityType.ACHIEVEMENT_BOOST, 50),
]}


def _character(path: Sequence[CharacterType], name, description, color, abilities, key=None):
    level = len(path)
    char_id = key or "_".join(t.value for t in path) + f"_{level}"
    return Character(
        id=char_id,
        name=name,
        description=description,
        level=level,
        evolution_path=tuple(path),
        next_evolution_exp=EVOLUTION_EXP_BY_LEVEL[level],
        color=color,
        abilities=tuple(ABILITIES[a] for a in abilities),
    )


CHARACTER_EVOLUTIONS: Dict[str, Character] = {c.id: c for c in [
    # Level 1
    _character([BALANCED], "Pomotama", "Balanced starter", "#FF6B6B", ["basic_timer", "basic_xp"]),
    _character([FOCUSED], "Focatama", "Focused starter", "#4ECDC4", ["basic_focus", "basic_timer"]),
    _character([CONSISTENT], "Contama", "Consistent starter", "#FFD93D", ["basic_xp", "basic_focus"]),

    # Level 2
    _character([BALANCED, BALANCED], "Pomokko", "Balanced first form", "#FF6B6B",
               ["basic_timer", "basic_xp", "balanced_adaptability"]),
    _character([FOCUSED, FOCUSED], "Focakko", "Focused first form", "#4ECDC4",
               ["basic_focus", "basic_timer", "focused_deep_work"]),
    _character([CONSISTENT, CONSISTENT], "Conkko", "Consistent first form", "#FFD93D",
               ["basic_xp", "basic_focus", "consistent_streak"]),
    _character([BALANCED, FOCUSED], "Pomofocakko", "Balanced-focused form", "#9370DB",
               ["basic_timer", "basic_focus", "focused_flow_state"]),
    _character([BALANCED, CONSISTENT], "Pomoconkko", "Balanced-consistent form", "#4ECDC4",
               ["basic_xp", "balanced_adaptability", "consistent_streak"]),
    _character([FOCUSED, BALANCED], "Focapomokko", "Focused-balanced form", "#7986CB",
               ["basic_focus", "balanced_adaptability", "focused_deep_work"]),
    _character([FOCUSED, CONSISTENT], "Focaconkko", "Focused-consistent form", "#5E35B1",
               ["basic_focus", "consistent_streak", "focused_deep_work"]),
    _character([CONSISTENT, BALANCED], "Conpomokko", "Consistent-balanced form", "#FFA726",
               ["basic_xp", "balanced_adaptability", "consistent_habit"]),
    _character([CONSISTENT, FOCUSED], "Confocakko", "Consistent-focused form", "#FF7043",
               ["basic_focus", "consistent_habit", "focused_flow_state"]),

    # Level 3
    _character([BALANCED] * 3, "Pomobara", "Pure balanced second form", "#FF6B6B",
               ["basic_timer", "basic_xp", "balanced_adaptability", "balanced_versatility"]),
    _character([FOCUSED] * 3, "Foca Master", "Pure focused second form", "#4ECDC4",
               ["basic_focus", "basic_timer", "focused_deep_work", "focused_flow_state"]),
    _character([CONSISTENT] * 3, "Con Master", "Pure consistent second form", "#FFD93D",
               ["basic_xp", "basic_focus", "consistent_streak", "consistent_habit"]),
    _character([BALANCED, FOCUSED, CONSISTENT], "Triforce", "Three-way balance", "#8BC34A",
               ["balanced_adaptability", "focused_deep_work", "consistent_streak", "advanced_achievement"]),
    _character([BALANCED, FOCUSED, BALANCED], "Pomowiz", "Master of wisdom and focus", "#8E44AD",
               ["balanced_adaptability", "focused_deep_work", "balanced_versatility", "advanced_achievement"]),
    _character([CONSISTENT, BALANCED, CONSISTENT], "Consage", "Sage of persistence", "#D35400",
               ["consistent_streak", "balanced_adaptability", "consistent_habit", "advanced_break"]),
    _character([FOCUSED, CONSISTENT, FOCUSED], "Focazen", "Zen focus master", "#2980B9",
               ["focused_deep_work", "consistent_streak", "focused_flow_state", "advanced_break"]),

    # Level 4
    _character([BALANCED] * 4, "Pomo King", "Ultimate balance", "#E91E63",
               ["balanced_adaptability", "balanced_versatility", "advanced_achievement",
                "advanced_game", "special_unlock"]),
    _character([FOCUSED] * 4, "Foca King", "Ultimate focus", "#3F51B5",
               ["focused_deep_work", "focused_flow_state", "advanced_break",
                "advanced_game", "special_time_warp"]),
    _character([CONSISTENT] * 4, "Phoenix Reborn", "Rises again after every fall", "#F39C12",
               ["consistent_streak", "consistent_habit", "phoenix_rebirth",
                "advanced_achievement", "special_time_warp"]),
    _character([BALANCED, CONSISTENT, FOCUSED, BALANCED], "Pomosage", "Sage of harmony", "#16A085",
               ["balanced_adaptability", "consistent_streak", "focused_deep_work",
                "advanced_achievement", "special_unlock"]),
    _character([FOCUSED, BALANCED, FOCUSED, CONSISTENT], "Foca Lord", "Ruler of focus", "#5D3FD3",
               ["focused_deep_work", "balanced_versatility", "focused_flow_state",
                "consistent_streak", "special_time_warp"]),
    _character([CONSISTENT, FOCUSED, CONSISTENT, BALANCED], "Con Titan", "Giant of persistence", "#F39C12",
               ["consistent_streak", "focused_deep_work", "consistent_habit",
                "balanced_versatility", "advanced_game"]),

    # Level 5 (terminal)
    _character([BALANCED] * 5, "Pomo God", "Legendary balance master", "#C2185B",
               ["balanced_adaptability", "balanced_versatility", "advanced_achievement",
                "advanced_game", "special_unlock", "special_time_warp"]),
    _character([FOCUSED] * 5, "Kitsune Sage", "Nine-tailed wisdom", "#9B59B6",
               ["focused_deep_work", "focused_flow_state", "kitsune_wisdom",
                "advanced_game", "special_unlock", "special_time_warp"]),
    _character([CONSISTENT] * 5, "Samurai Eternal", "Unbending discipline", "#C0392B",
               ["consistent_streak", "consistent_habit", "samurai_discipline",
                "advanced_achievement", "special_unlock", "phoenix_rebirth"]),
    _character([BALANCED, FOCUSED, CONSISTENT, BALANCED, FOCUSED], "Pomo Emperor", "Emperor of time", "#6C3483",
               ["balanced_adaptability", "focused_deep_work", "consistent_streak",
                "advanced_achievement", "special_unlock", "special_time_warp"]),
    _character([FOCUSED, CONSISTENT, FOCUSED, CONSISTENT, FOCUSED], "Foca Overlord", "Overlord of focus", "#1A237E",
               ["focused_deep_work", "consistent_streak", "focused_flow_state",
                "consistent_habit", "advanced_break", "special_time_warp"]),
    _character([CONSISTENT, BALANCED, CONSISTENT, BALANCED, CONSISTENT], "Con Eternal", "Eternal persistence",
               "#FF5722",
               ["consistent_streak", "balanced_adaptability", "consistent_habit",
                "balanced_versatility", "advanced_achievement", "special_unlock"]),

    # Fallback
    _character([BALANCED], "Pomotama", "Balanced starter", "#FF6B6B", ["basic_timer", "basic_xp"], key="default"),
]}

DEFAULT_CHARACTER = CHARACTER_EVOLUTIONS["default"]


class EvolutionResult(NamedTuple):
    new_level: int
    new_path: Tuple[CharacterType, ...]
    new_exp: int
    evolved: bool


def character_key(path: Sequence[CharacterType], level: int) -> str:
    return "_".join(CharacterType(t).value for t in list(path)[:level]) + f"_{level}"


def resolve_character(path: Sequence[CharacterType], level: int) -> Character:
    """Look up the character for a path.

    Tries the exact path, then the last type repeated ``level`` times,
    then the default character.
    """
    character = CHARACTER_EVOLUTIONS.get(character_key(path, level))
    if character:
        return character

    if path:
        last_type = CharacterType(path[-1])
        character = CHARACTER_EVOLUTIONS.get(character_key([last_type] * level, level))
        if character:
            return character

    return DEFAULT_CHARACTER


def next_evolution_exp(path: Sequence[CharacterType], level: int) -> Optional[int]:
    if level >= MAX_CHARACTER_LEVEL:
        return None
    character = resolve_character(path, level)
    if character.level == level:
        return character.next_evolution_exp
    return EVOLUTION_EXP_BY_LEVEL.get(level)


def character_exp_for_session(duration_minutes: int) -> int:
    return duration_minutes // settings.CHARACTER_EXP_DIVISOR


def classify_character_type(total_sessions: int, streak: int, total_days: int) -> CharacterType:
    """Pick the branch for the next evolution from recent behaviour."""
    if total_sessions > streak * 3 and total_sessions > total_days * 2:
        return FOCUSED
    if streak > total_sessions / 3 and streak > total_days:
        return CONSISTENT
    return BALANCED


def try_evolve(
    path: Sequence[CharacterType],
    level: int,
    exp: int,
    total_sessions: int,
    streak: int,
    total_days: int
) -> EvolutionResult:
    """Advance the character one level if its evolution exp is full."""
    path = tuple(CharacterType(t) for t in path)
    threshold = next_evolution_exp(path, level)

    if threshold is None or exp < threshold:
        return EvolutionResult(level, path, exp, False)

    new_type = classify_character_type(total_sessions, streak, total_days)
    return EvolutionResult(level + 1, path + (new_type,), 0, True)


def character_abilities(path: Sequence[CharacterType], level: int) -> Tuple[Ability, ...]:
    return resolve_character(path, level).abilities


def active_abilities(
    path: Sequence[CharacterType],
    level: int,
    active_ability_ids: Iterable[str]
) -> Tuple[Ability, ...]:
    """Abilities both granted by the current character and switched on."""
    active = set(active_ability_ids)
    return tuple(a for a in character_abilities(path, level) if a.id in active)


def boost_percent(abilities: Iterable[Ability], ability_type: AbilityType) -> int:
    return sum(a.value for a in abilities if a.type == ability_type)


def has_ability_type(abilities: Iterable[Ability], ability_type: AbilityType) -> bool:
    return any(a.type == ability_type for a in abilities)
