"""CivicWatch: issue-feed synchronization over a local or remote store."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("civicwatch")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from civicwatch.models import Identity, Issue
from civicwatch.provider import Provider, open_provider

__all__ = ["Identity", "Issue", "Provider", "__version__", "open_provider"]
