"""Exception types raised by the Trinity relayer components."""


class RelayerError(Exception):
    """Base class for relayer errors."""


class ChainClientError(RelayerError):
    """A chain RPC endpoint was unreachable or returned an unusable response."""

    def __init__(self, chain: str, message: str) -> None:
        super().__init__(f"[{chain}] {message}")
        self.chain = chain


class SigningError(RelayerError):
    """No signing capability is available for a chain role, or signing failed."""


class NonceSyncError(RelayerError):
    """The authoritative validator nonce could not be read from the contract."""


class SubmissionError(RelayerError):
    """A proof submission was rejected by the transaction backend."""
