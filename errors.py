class MonitorError(Exception):
    """Base class for errors that abort a single poll of the battery."""

    pass


class ReadError(MonitorError):
    """Raised when the battery status cannot be read from UPower."""

    pass


class NotifyError(MonitorError):
    """Raised when a desktop notification cannot be delivered."""

    pass
