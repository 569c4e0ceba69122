from __future__ import annotations
from importlib import import_module
from typing import Mapping, Optional
class Registry:
    """Maps collaborator names ("media", "verifier", "store") to ``module:Class`` targets."""
    def __init__(self, defaults: Optional[Mapping[str, str]] = None):
        self._map: dict[str, str] = dict(defaults or {})
    def register(self, key: str, target: str) -> None:
        self._map[key] = target
    def target(self, key: str) -> str:
        return self._map.get(key, key)
    def create(self, key: str, *args, **kwargs):
        target = self.target(key)
        mod_path, _, obj = target.partition(":")
        mod = import_module(mod_path)
        cls = getattr(mod, obj) if obj else mod
        return cls(*args, **kwargs)
def registry_from_config(config) -> Registry:
    return Registry(config.plugins)
def verifier_from_config(registry: Registry, config):
    """Instantiate the configured verifier with the settings it takes."""
    v = config.verifier
    return registry.create("verifier", v.api_key, model=v.model, endpoint=v.endpoint, timeout=v.timeout_s)
