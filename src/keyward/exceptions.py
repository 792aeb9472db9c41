"""Exception root for Keyward."""


class KeywardError(Exception):
    """Base class for every error raised by Keyward."""
    pass
