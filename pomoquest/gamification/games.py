"""Break-time mini-game catalogue and unlock conditions."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Union


class UnlockType(str, Enum):
    DEFAULT = "default"
    LEVEL = "level"
    ACHIEVEMENT = "achievement"


@dataclass(frozen=True)
class MiniGame:
    id: str
    name: str
    description: str
    unlock_type: UnlockType
    unlock_value: Union[int, str, None] = None


GAMES: Dict[str, MiniGame] = {g.id: g for g in [
    MiniGame("tap_target", "Tap Target", "Tap as many targets as you can", UnlockType.DEFAULT),
    MiniGame("word_scramble", "Word Scramble", "Pick the right meaning for each word", UnlockType.DEFAULT),
    MiniGame("memory_match", "Memory Match", "Flip cards to find matching pairs", UnlockType.LEVEL, 3),
    MiniGame("number_puzzle", "Number Puzzle", "Put the numbers in order", UnlockType.LEVEL, 5),
    MiniGame("math_challenge", "Math Challenge", "Solve sums against the clock", UnlockType.LEVEL, 8),
    MiniGame("pattern_memory", "Pattern Memory", "Repeat the flashing pattern", UnlockType.ACHIEVEMENT, "focus_master"),
    MiniGame("anagram", "Anagram", "Rearrange letters into new words", UnlockType.ACHIEVEMENT, "consistency_pro"),
    MiniGame("color_match", "Color Match", "Does the word match its colour?", UnlockType.ACHIEVEMENT, "time_wizard"),
]}

DEFAULT_GAME_IDS = tuple(g.id for g in GAMES.values() if g.unlock_type == UnlockType.DEFAULT)


def is_unlockable(game: MiniGame, level: int, unlocked_achievements: Iterable[str]) -> bool:
    if game.unlock_type == UnlockType.DEFAULT:
        return True
    if game.unlock_type == UnlockType.LEVEL:
        return level >= game.unlock_value
    return game.unlock_value in set(unlocked_achievements)


def check_unlocks(
    level: int,
    unlocked_achievements: Iterable[str],
    unlocked_games: Iterable[str]
) -> List[str]:
    """Games whose condition is now met but that are not unlocked yet."""
    achievements = set(unlocked_achievements)
    already = set(unlocked_games)
    return [
        game.id for game in GAMES.values()
        if game.id not in already and is_unlockable(game, level, achievements)
    ]
