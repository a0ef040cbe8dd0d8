from .base import Provider, ProviderContext
from .builtins import builtin_providers
from .registry import Registry

__all__ = ["Provider", "ProviderContext", "Registry", "builtin_providers"]
