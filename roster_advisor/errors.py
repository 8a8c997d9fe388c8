"""Error taxonomy shared by the engines and the advisor facade."""


class AdvisorError(Exception):
    """Base class for roster advisor errors."""


class NotFoundError(AdvisorError, LookupError):
    """A league, player, recommendation or alert does not exist."""


class InvalidRequestError(AdvisorError, ValueError):
    """Input was malformed and rejected before any engine logic ran."""


class UpstreamUnavailableError(AdvisorError):
    """The sports-data feed or the cache could not be reached."""
