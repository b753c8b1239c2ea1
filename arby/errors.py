# arby/errors.py


class ArbyError(Exception):
    """Base class for everything the agent raises on purpose."""


class ConfigError(ArbyError):
    pass


class CEXInitError(ArbyError):
    """The centralized exchange session could not be established."""


class OpenDexError(ArbyError):
    """
    An OpenDEX RPC call failed. `recoverable` marks failures worth retrying:
    the node or its proxy is unreachable, timing out, or not ready yet.
    """

    def __init__(self, message: str, recoverable: bool = False):
        super().__init__(message)
        self.recoverable = recoverable
