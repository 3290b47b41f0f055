"""Error taxonomy shared by the reconciliation pass and the stop-loss tools."""


class TradeGuardError(Exception):
    """Base class for all tradeguard errors."""


class ConfigurationError(TradeGuardError):
    """A feature was invoked while its governing flag is disabled."""


class RecoverableQueryError(TradeGuardError):
    """An exchange query failed for one item; the caller may continue with the next."""


class FatalStoreError(TradeGuardError):
    """The ledger store is unreachable or a required write failed."""


class NotFoundError(TradeGuardError):
    """No live exchange position exists for the requested symbol."""


class MarketDataError(TradeGuardError):
    """Candle data could not be obtained or is unusable."""
