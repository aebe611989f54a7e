from typing import Optional


class EngineError(Exception):
    """Base class of errors the engine reports to its callers"""


class EraUnavailable(EngineError):
    """The current era could not be resolved within the retry budget"""

    def __init__(self, network: str, attempts: int, cause: Optional[BaseException] = None):
        self.network = network
        self.attempts = attempts
        self.cause = cause
        reason = f": {cause}" if cause else ""
        super().__init__(f"Current era of {network} unavailable after {attempts} attempts{reason}")


class DirectoryFetchFailed(EngineError):
    """The validator set could not be read from the chain"""

    def __init__(self, network: str, era: int, cause: Optional[BaseException] = None):
        self.network = network
        self.era = era
        self.cause = cause
        super().__init__(f"Failed to fetch validators of {network} at era {era}: {cause}")


class StatisticsUnavailable(EngineError):
    """
    Statistics of one validator could not be computed.

    Never leaves the batch loader: the entry is left out of the result map.
    """

    def __init__(self, address: str, cause: Optional[BaseException] = None):
        self.address = address
        self.cause = cause
        super().__init__(f"Statistics unavailable for {address}: {cause}")
