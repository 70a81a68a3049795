class CapsessionError(Exception):
    """Base error for capability session operations."""


class StorageFailure(CapsessionError):
    pass


class KeyLoadError(StorageFailure):
    """The persisted identity secret exists but cannot be turned back into a keypair."""


class TokenDecodeError(CapsessionError):
    pass


class CapabilityNotHeldError(CapsessionError):
    pass
