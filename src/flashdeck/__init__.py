"""flashdeck: spaced-repetition scheduling and resilient local persistence."""

from flashdeck.consts import VERSION

__version__ = VERSION
