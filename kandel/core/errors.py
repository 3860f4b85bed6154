class KandelError(Exception):
    """Base exception for distribution, chunking and provision errors."""
    pass

class InvalidPrice(KandelError):
    """A zero or negative price was used to convert between base and quote."""
    pass

class InvalidRange(KandelError):
    """An index range or chunk size cannot be tiled."""
    pass

class MissingOffer(KandelError):
    """An explicit offer record lacks its index, side, price or gives."""
    pass

class InvalidDistribution(KandelError):
    """A distribution whose offers break the grid invariants."""
    pass

class UpstreamQueryFailure(KandelError):
    """The market collaborator failed or timed out while answering a query."""
    pass
