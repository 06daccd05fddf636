# modules/errors.py


class PmzError(ValueError):
    """Base class for every PMZ evaluation failure."""


class InsufficientData(PmzError):
    """
    The candle sequence does not span what the evaluator needs:
    prior 16:00 close, pre-market candles, the 09:30 open candle,
    or a strictly increasing timestamp order.
    """


class InvalidConfiguration(PmzError):
    """Unknown premarket mode or an unusable bar period."""
