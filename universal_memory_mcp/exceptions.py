"""
Exception types for Universal Memory MCP
"""


class MemoryServiceError(Exception):
    """Base class for errors raised by the memory service"""


class ValidationError(MemoryServiceError):
    """Raised when tool arguments fail validation before touching the store"""

    def __init__(self, errors):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class StoreNotInitializedError(MemoryServiceError):
    """Raised when the SQLite store is used before initialize() or after close()"""

    def __init__(self, message: str = "Database not initialized"):
        super().__init__(message)


class CollaboratorError(MemoryServiceError):
    """Raised inside collaborator clients; never escapes them"""
