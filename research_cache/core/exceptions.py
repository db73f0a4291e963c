"""Exception types raised by the research cache."""


class ResearchCacheError(Exception):
    """Base class for all research cache errors."""
    pass


class ContentStoreError(ResearchCacheError):
    """Raised when a critical-path Content Store read or write fails."""
    pass


class InvalidStatusTransition(ResearchCacheError):
    """Raised when a processing status would move backwards."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move processing status from '{current}' to '{target}'")
