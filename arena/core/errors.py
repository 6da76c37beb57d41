"""Errors raised by the battle core and its adapters.

Every error carries the HTTP status it maps to and a stable machine-readable code so the
transport layer can render it without knowing the concrete class.
"""

from fastapi import status


class BattleError(Exception):
    """Base class for all battle errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "battle_error"
    default_message: str = "Battle error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# Precondition errors: the session is left untouched


class InvalidModeError(BattleError):
    code = "invalid_mode"
    default_message = "Invalid battle mode"


class DeckSizeMismatchError(BattleError):
    code = "deck_size_mismatch"
    default_message = "Deck size does not match the battle mode"


class InvalidActionError(BattleError):
    code = "invalid_action"
    default_message = "Invalid action"


class InvalidMoveIndexError(BattleError):
    code = "invalid_move_index"
    default_message = "Invalid move index"


class InsufficientStaminaError(BattleError):
    code = "insufficient_stamina"
    default_message = "Not enough stamina"


class SacrificeForbiddenError(BattleError):
    code = "sacrifice_forbidden"
    default_message = "Sacrifice is not allowed"


class SwitchNotAllowedError(BattleError):
    code = "switch_not_allowed"
    default_message = "Switching is not allowed right now"


class TargetKnockedOutError(BattleError):
    code = "target_knocked_out"
    default_message = "Cannot switch to a knocked out Pokemon"


class ModeUnsupportedError(BattleError):
    code = "mode_unsupported"
    default_message = "This operation is only available in 5v5 battles"


class InvalidIndexError(BattleError):
    code = "invalid_index"
    default_message = "Invalid Pokemon index"


class NotYourTurnError(BattleError):
    status_code = status.HTTP_409_CONFLICT
    code = "not_your_turn"
    default_message = "It is not the player's turn"


class BattleOverError(BattleError):
    status_code = status.HTTP_409_CONFLICT
    code = "battle_over"
    default_message = "Battle is already over"


class BattleNotOverError(BattleError):
    status_code = status.HTTP_409_CONFLICT
    code = "battle_not_over"
    default_message = "Battle is not over yet"


class AlreadyClaimedError(BattleError):
    status_code = status.HTTP_409_CONFLICT
    code = "already_claimed"
    default_message = "Rewards have already been claimed"


class NotSessionOwnerError(BattleError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "not_session_owner"
    default_message = "This battle session belongs to another player"


# Resource errors


class SessionNotFoundError(BattleError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "session_not_found"
    default_message = "Battle session not found"


class PersistFailedError(BattleError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "persist_failed"
    default_message = "Failed to save battle session"


class CatalogLookupFailedError(BattleError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "catalog_lookup_failed"
    default_message = "Failed to load Pokemon data"


class InventoryCreditFailedError(BattleError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "inventory_credit_failed"
    default_message = "Failed to credit battle rewards"
