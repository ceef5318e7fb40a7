class SyncError(Exception):
    pass


class TransportError(SyncError):
    """The request never produced a usable HTTP response"""


class ProtocolError(SyncError):
    """The server answered, but not the way we expected"""


class CodeNotFoundError(ProtocolError):
    def __init__(self, location: str):
        super().__init__(
            f"No authorization code in redirect location {location!r}. "
            "Maybe your login-info was wrong?"
        )
        self.location = location


class NotFoundError(SyncError):
    def __init__(self, name: str):
        super().__init__(f"{name} does not exist")
        self.name = name
