"""tmsize - Time Machine backup sizes, computed once and cached."""

__version__ = "0.1.0"
