class MarketplaceError(ValueError):
    """Base class for user-visible marketplace errors."""


class MarketplaceValidationError(MarketplaceError):
    pass


class MarketplaceNotFoundError(MarketplaceError):
    """Entity is missing, or the caller has no rights over it.

    The two cases are reported identically so that unauthorized callers
    cannot discover the existence of bookings or reviews.
    """


class MarketplaceConflictError(MarketplaceError):
    pass


class MarketplaceInvalidStateError(MarketplaceError):
    pass


class MarketplacePermissionError(MarketplaceError):
    pass
