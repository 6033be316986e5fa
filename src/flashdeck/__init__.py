"""flashdeck: spaced-repetition scheduling and review sessions."""

from flashdeck.consts import VERSION

__version__ = VERSION
