"""Exceptions raised by the genealogy connector."""


class GenealogyValidationError(ValueError):
    """A request or option is malformed; raised before any historian call."""


class HistorianError(RuntimeError):
    """The historian raised an unexpected fault (transport failure, HTTP 5xx)."""

    def __init__(self, message: str, channel: str = "") -> None:
        super().__init__(f"{message} (channel: {channel})" if channel else message)
        self.channel = channel
