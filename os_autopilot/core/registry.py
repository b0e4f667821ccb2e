# os_autopilot/core/registry.py
import inspect
from typing import Any, Dict, Iterable, List, Optional

from os_autopilot.core.errors import ConfigError
from os_autopilot.core.integration_contract import AdapterContract, AdapterKind


class Registry:
    def __init__(self):
        self._adapters: Dict[str, Any] = {}
        self._contracts: Dict[str, AdapterContract] = {}

    def register_adapter(
        self,
        name: str,
        obj: Any,
        kinds: Optional[Iterable[AdapterKind]] = None,
        dependencies: Optional[List[str]] = None,
        adapter_class: Optional[str] = None,
    ):
        """
        obj may be an adapter class, an instance, or a factory function.
        Kinds default to the ``kinds`` attribute of the adapter class; lazy
        factories must pass them explicitly, and may name the class they
        build with ``adapter_class`` (otherwise the factory itself is recorded).
        """
        self._adapters[name] = obj

        if isinstance(obj, type) or inspect.isfunction(obj):
            target = obj
        else:
            target = obj.__class__
        if kinds is None:
            kinds = getattr(target, "kinds", [])

        self._contracts[name] = AdapterContract(
            name=name,
            adapter_class=adapter_class or f"{target.__module__}.{target.__qualname__}",
            kinds=list(kinds),
            dependencies=dependencies,
        )

    def get_adapter(self, name: str) -> Optional[Any]:
        return self._adapters.get(name)

    def get_contract(self, name: str) -> Optional[AdapterContract]:
        return self._contracts.get(name)

    def list_adapters(self, kind: Optional[AdapterKind] = None) -> List[str]:
        if kind is None:
            return list(self._adapters.keys())
        return [n for n, c in self._contracts.items() if c.provides(kind)]

    def list_contracts(self):
        return {k: v.model_dump(mode="json") for k, v in self._contracts.items()}

    def create(self, name: str, kind: AdapterKind, **kwargs) -> Any:
        """Instantiate the adapter registered under ``name`` and check it provides ``kind``."""
        obj = self.get_adapter(name)
        contract = self.get_contract(name)
        if obj is None or contract is None:
            raise ConfigError(f"{kind.value.capitalize()} adapter '{name}' is not registered in registry!")
        if not contract.provides(kind):
            raise ConfigError(f"Adapter '{name}' does not provide '{kind.value}'")
        return obj(**kwargs) if callable(obj) else obj


# global registry instance
registry = Registry()
