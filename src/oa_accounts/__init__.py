"""oa-accounts: credential lifecycle and multi-account orchestration."""

from ._version import __version__


__all__ = ["__version__"]
