import importlib
import logging
import pkgutil
from types import ModuleType
from typing import Iterable

from social_connect.application.errors import UnknownPlatform
from social_connect.integrations.providers.base import OAuthProvider

logger = logging.getLogger(__name__)

_DISCOVERED = False
_PROVIDER_REGISTRY: dict[str, OAuthProvider] = {}
_SKIP_MODULES = {"base", "factory", "http_client", "normalizer"}


def _iter_subclasses(root: type[OAuthProvider]) -> Iterable[type[OAuthProvider]]:
    for subclass in root.__subclasses__():
        yield subclass
        yield from _iter_subclasses(subclass)


def _discover_provider_modules() -> None:
    package = importlib.import_module("social_connect.integrations.providers")
    if not isinstance(package, ModuleType) or not hasattr(package, "__path__"):
        return

    for module_info in pkgutil.iter_modules(package.__path__, prefix="social_connect.integrations.providers."):
        module_name = module_info.name.rsplit(".", 1)[-1]
        if module_name in _SKIP_MODULES:
            continue
        importlib.import_module(module_info.name)


def _load_registry() -> dict[str, OAuthProvider]:
    global _DISCOVERED
    if _DISCOVERED and _PROVIDER_REGISTRY:
        return _PROVIDER_REGISTRY

    _discover_provider_modules()
    discovered: dict[str, OAuthProvider] = {}
    for provider_cls in _iter_subclasses(OAuthProvider):
        platform = (getattr(provider_cls, "platform", "") or "").strip().lower()
        if not platform or getattr(provider_cls, "__abstractmethods__", None):
            continue
        discovered[platform] = provider_cls()

    _PROVIDER_REGISTRY.clear()
    _PROVIDER_REGISTRY.update(discovered)
    _DISCOVERED = True
    logger.info(
        "oauth_provider_registry_loaded total=%s platforms=%s",
        len(_PROVIDER_REGISTRY),
        ",".join(sorted(_PROVIDER_REGISTRY.keys())),
    )
    return _PROVIDER_REGISTRY


def list_registered_platforms() -> list[str]:
    registry = _load_registry()
    return sorted(registry.keys())


def get_provider(platform: str) -> OAuthProvider:
    normalized_platform = (platform or "").strip().lower()
    registry = _load_registry()
    provider = registry.get(normalized_platform)
    if provider is None:
        logger.info(
            "oauth_provider_resolution_failed platform=%s available=%s",
            normalized_platform,
            ",".join(sorted(registry.keys())),
        )
        raise UnknownPlatform(f"Unsupported platform: {normalized_platform}")
    return provider
