class HymapError(Exception):
    pass


class FormatError(HymapError):
    """File header is not a recognised region/prefab layout."""


class TruncatedDataError(HymapError):
    """A declared size or offset points past the end of the buffer."""

    def __init__(self, message, offset=None, needed=None, available=None):
        super().__init__(message)
        self.offset = offset
        self.needed = needed
        self.available = available


class DecompressionError(HymapError):
    """A single sector could not be turned back into chunk bytes."""

    def __init__(self, message, index=None):
        super().__init__(message)
        self.index = index


class OutOfRangeError(HymapError, IndexError):
    pass


class NotFoundError(HymapError, FileNotFoundError):
    pass


class AmbiguousSectionWarning(UserWarning):
    """More than one block section was found in a chunk."""
