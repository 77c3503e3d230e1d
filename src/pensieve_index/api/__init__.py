"""Public API surface for HTTP serving and Python-first interfaces."""

from pensieve_index.api.app import create_app
from pensieve_index.api.contracts import SeedDocument, load_seed_json, save_seed_json
from pensieve_index.api.python_interface import AdminSession, DiscoveryApiClient

__all__ = [
    "AdminSession",
    "DiscoveryApiClient",
    "SeedDocument",
    "create_app",
    "load_seed_json",
    "save_seed_json",
]
