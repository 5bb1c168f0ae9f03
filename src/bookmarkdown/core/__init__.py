"""GitHub Gist access shared between the CLI and the sync shell."""

from .async_utils import run_sync
from .client import GistClient, RemoteDocument

__all__ = ["GistClient", "RemoteDocument", "run_sync"]
