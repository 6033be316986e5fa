"""Exception hierarchy shared by every layer."""


class FlashdeckError(Exception):
    """Base class for all flashdeck errors."""


class ValidationError(FlashdeckError):
    """Input outside its defined range (quality, rating, or the wrong card)."""


class StoreFailure(FlashdeckError):
    """A card store or quota store call failed."""


class CardNotFoundError(StoreFailure):
    def __init__(self, card_id: str):
        super().__init__(f"Card not found: {card_id}")
        self.card_id = card_id


class DeckNotFoundError(StoreFailure):
    def __init__(self, deck_id: str):
        super().__init__(f"Deck not found: {deck_id}")
        self.deck_id = deck_id


class SessionStateError(FlashdeckError):
    """Operation not allowed in the session's current status."""


class SessionBusyError(SessionStateError):
    """Another rating or undo for the same session is still in flight."""


class NothingToUndoError(SessionStateError):
    pass
