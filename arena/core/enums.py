from enum import StrEnum


class BattleMode(StrEnum):
    DUEL = "1v1"
    TEAM = "5v5"

    @property
    def deck_size(self) -> int:
        return 1 if self is BattleMode.DUEL else 5


class ActionType(StrEnum):
    ATTACK = "attack"
    DEFEND = "defend"
    PASS = "pass"
    SACRIFICE = "sacrifice"
    SURRENDER = "surrender"


class Side(StrEnum):
    PLAYER = "player"
    AI = "ai"

    @property
    def label(self) -> str:
        """Name used in battle log lines."""
        return "Player" if self is Side.PLAYER else "AI"

    @property
    def opponent(self) -> "Side":
        return Side.AI if self is Side.PLAYER else Side.PLAYER


class Turn(StrEnum):
    PLAYER = "player"
    AI = "ai"
    NONE = "none"


class Winner(StrEnum):
    PLAYER = "player"
    AI = "ai"
    DRAW = "draw"
    UNRESOLVED = "unresolved"


class BattleOutcome(StrEnum):
    WIN = "win"
    LOSS = "loss"
    DRAW = "draw"


class LogKind(StrEnum):
    INFO = "info"
    TURN = "turn"
    COMMIT = "commit"
    DAMAGE = "damage"
    BLOCK = "block"
    SACRIFICE = "sacrifice"
    PASS = "pass"
    SURRENDER = "surrender"
    KNOCKOUT = "knockout"
    SWITCH = "switch"
    STALEMATE = "stalemate"
    BATTLE_END = "battle_end"
    INVARIANT = "invariant"


class EventType(StrEnum):
    BATTLE_REWARD = "battle_reward"
    LEVEL_UP = "level_up"
