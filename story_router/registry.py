"""Provider registry with a capability index."""
from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import DuplicateProviderError
from .models import ProviderType
from .providers.base import BaseProvider

logger = logging.getLogger(__name__)

RemovalListener = Callable[[BaseProvider], None]


@dataclass(frozen=True)
class _Snapshot:
    providers: Mapping[str, BaseProvider]
    order: Tuple[str, ...]
    by_capability: Mapping[str, Tuple[str, ...]]
    by_type: Mapping[ProviderType, Tuple[str, ...]]


_EMPTY = _Snapshot(MappingProxyType({}), (), MappingProxyType({}), MappingProxyType({}))


def _build_snapshot(providers: Dict[str, BaseProvider], order: Iterable[str]) -> _Snapshot:
    order = tuple(order)
    index: Dict[str, List[str]] = {}
    types: Dict[ProviderType, List[str]] = {}
    for name in order:
        provider = providers[name]
        types.setdefault(provider.type, []).append(name)
        for capability in provider.capabilities:
            names = index.setdefault(capability.name, [])
            if name not in names:
                names.append(name)
    return _Snapshot(
        providers=MappingProxyType(dict(providers)),
        order=order,
        by_capability=MappingProxyType({key: tuple(value) for key, value in index.items()}),
        by_type=MappingProxyType({key: tuple(value) for key, value in types.items()}),
    )


class ProviderRegistry:
    """Copy-on-write registry: readers use the current snapshot, writers swap in a new one."""

    def __init__(self) -> None:
        self._snapshot = _EMPTY
        self._write_lock = threading.Lock()
        self._removal_listeners: List[RemovalListener] = []

    def add_removal_listener(self, listener: RemovalListener) -> None:
        self._removal_listeners.append(listener)

    def register(self, provider: BaseProvider) -> None:
        with self._write_lock:
            current = self._snapshot
            if provider.name in current.providers:
                raise DuplicateProviderError(provider.name)
            providers = dict(current.providers)
            providers[provider.name] = provider
            self._snapshot = _build_snapshot(providers, current.order + (provider.name,))
        logger.info("Registered provider: %s (%s)", provider.name, provider.type.value)

    def unregister(self, name: str) -> bool:
        with self._write_lock:
            current = self._snapshot
            provider = current.providers.get(name)
            if provider is None:
                return False
            providers = dict(current.providers)
            del providers[name]
            self._snapshot = _build_snapshot(providers, (key for key in current.order if key != name))
        logger.info("Unregistered provider: %s", name)
        for listener in list(self._removal_listeners):
            try:
                listener(provider)
            except Exception:
                logger.exception("Removal listener failed for %s", name)
        return True

    def clear(self) -> List[BaseProvider]:
        with self._write_lock:
            current = self._snapshot
            self._snapshot = _EMPTY
        return [current.providers[name] for name in current.order]

    def get_provider(self, name: str) -> Optional[BaseProvider]:
        return self._snapshot.providers.get(name)

    def get_all_providers(self) -> List[BaseProvider]:
        snapshot = self._snapshot
        return [snapshot.providers[name] for name in snapshot.order]

    async def get_available_providers(self) -> List[BaseProvider]:
        providers = self.get_all_providers()
        results = await asyncio.gather(
            *(provider.is_available() for provider in providers),
            return_exceptions=True,
        )
        available = []
        for provider, result in zip(providers, results):
            if isinstance(result, BaseException):
                logger.warning("Availability check raised for %s: %s", provider.name, result)
                continue
            if result:
                available.append(provider)
        return available

    def get_providers_by_type(self, provider_type: ProviderType | str) -> List[BaseProvider]:
        snapshot = self._snapshot
        return [snapshot.providers[name] for name in snapshot.by_type.get(ProviderType(provider_type), ())]

    def get_providers_by_capability(self, capability: str) -> List[BaseProvider]:
        snapshot = self._snapshot
        names = snapshot.by_capability.get(capability)
        if names is not None:
            return [snapshot.providers[name] for name in names]
        # Index miss: scan in case a provider's capabilities were not indexed.
        return [
            snapshot.providers[name]
            for name in snapshot.order
            if any(item.name == capability for item in snapshot.providers[name].capabilities)
        ]

    def names(self) -> Iterable[str]:
        return self._snapshot.order

    def __contains__(self, item: str) -> bool:
        return item in self._snapshot.providers

    def __len__(self) -> int:
        return len(self._snapshot.order)
