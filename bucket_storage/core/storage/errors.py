"""
Storage error taxonomy.

Callers must always be able to tell three situations apart:
the object is absent, the operation failed, the operation succeeded.
Absence is represented by return values (None, False, StreamMissing);
failures are represented by BackendError.
"""


class StorageError(Exception):
    """Base class for all storage errors."""
    pass


class BackendError(StorageError):
    """
    Raised when the storage backend fails.
    
    Network, auth, quota and malformed-response errors all land here.
    The SDK exception is attached as __cause__.
    """
    pass


class ObjectNotFoundError(StorageError):
    """
    The backend's "no such object" signal.
    
    Raised by ObjectBackend implementations only. ObjectStorage converts it
    into None / False / StreamMissing and never lets it escape.
    """
    
    def __init__(self, bucket: str, key: str) -> None:
        super().__init__(f"Object {key} not found in bucket {bucket}")
        self.bucket = bucket
        self.key = key


class FileNotFound(StorageError):
    """Carried by StreamMissing when a streamed object does not exist."""
    
    code = "fileNotFound"
    
    def __init__(self, path: str) -> None:
        super().__init__(f"File at path {path} not found.")
        self.path = path


class StreamStateError(StorageError):
    """Raised when an ObjectReadStream is used out of order."""
    pass
