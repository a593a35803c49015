"""Land-lease registry: repository bootstrap and settings."""

from .bootstrap import InitResult, RepositoryInitError, initialize_repository
from .factory import open_registry
from .settings import RegistrySettings, SettingsError, load_registry_settings

__all__ = [
    "InitResult",
    "RegistrySettings",
    "RepositoryInitError",
    "SettingsError",
    "initialize_repository",
    "load_registry_settings",
    "open_registry",
]
