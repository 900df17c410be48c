"""didmirror - off-chain mirror of the DID registry and DID storage ledgers."""

__version__ = "0.1.0"
