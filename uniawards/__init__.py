"""University awards voting: nominations, moderation, one vote per poll, live results"""

__version__ = "1.0.0"
