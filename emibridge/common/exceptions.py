"""
Custom Exception Classes for the EMI Bridge

Hierarchical exception structure for error handling across services.
"""


class EmiBridgeError(Exception):
    """Base exception for all EMI bridge errors"""

    def __init__(self, message: str, recoverable: bool = True):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


class ConfigError(EmiBridgeError):
    """Configuration defects (bad scaler, address or data type)"""

    def __init__(self, message: str, data_load: str | None = None):
        self.data_load = data_load
        self.detail = message
        super().__init__(f"Config Error: {message}", recoverable=False)


class TransportError(EmiBridgeError):
    """Field device communication errors"""

    def __init__(
        self,
        message: str,
        address: int | None = None,
        function: str | None = None,
    ):
        self.address = address
        self.function = function
        super().__init__(f"Transport Error: {message}", recoverable=True)


class PublishError(EmiBridgeError):
    """Broker publish errors"""

    def __init__(self, message: str, topic: str | None = None):
        self.topic = topic
        super().__init__(f"Publish Error: {message}", recoverable=True)


class BrokerConnectionError(PublishError):
    """Broker session could not be opened - aborts the whole batch"""

    def __init__(
        self,
        message: str,
        host: str | None = None,
        port: int | None = None,
    ):
        self.host = host
        self.port = port
        super().__init__(message)
