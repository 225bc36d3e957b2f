"""Reliable file transfer over UDP with go-back-N and selective-repeat windows."""

__version__ = "0.1.0"
__all__ = ["protocol", "sender", "receiver"]