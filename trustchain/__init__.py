"""TrustChain: file proofs anchored in Algorand transaction notes."""

__version__ = "1.0.0"
