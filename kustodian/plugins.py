"""Registry of plugin hooks and substitution providers.

Substitution types outside the core set, such as `1password` or `doppler`,
are resolved by providers registered for the type. The registry resolves
them during the `generator:after_resolve` hook, before handlers registered
at the default priority run, and writes the values over the ones already
resolved for each kustomization.
"""

from collections.abc import Awaitable, Mapping
from dataclasses import dataclass, field
import inspect
import logging
from typing import Any, Protocol

from .exceptions import SubstitutionResolutionException
from .hooks import AFTER_RESOLVE, DEFAULT_PRIORITY, HookContext, HookDispatcher, HookHandler
from .manifest import Cluster, Substitution, Template
from .substitution import external_substitutions

__all__ = [
    "SUBSTITUTION_PRIORITY",
    "SubstitutionContext",
    "SubstitutionProvider",
    "HookContribution",
    "Plugin",
    "PluginRegistry",
]

_LOGGER = logging.getLogger(__name__)

SUBSTITUTION_PRIORITY = 50
"""Priority of the after resolve handler applying provider values."""


@dataclass
class SubstitutionContext:
    """Information handed to a substitution provider."""

    cluster: Cluster
    templates: list[Template]
    config: dict[str, Any] = field(default_factory=dict)
    """The cluster's configuration for the plugin named after the type."""


class SubstitutionProvider(Protocol):
    """Resolves a batch of substitutions of a single type."""

    def resolve(
        self, substitutions: list[Substitution], context: SubstitutionContext
    ) -> Mapping[str, str] | Awaitable[Mapping[str, str]]:
        """Return resolved values keyed by substitution name."""


@dataclass
class HookContribution:
    """A hook handler contributed by a plugin."""

    event: str
    handler: HookHandler
    priority: int = DEFAULT_PRIORITY


@dataclass
class Plugin:
    """A bundle of hooks and substitution providers."""

    name: str
    hooks: list[HookContribution] = field(default_factory=list)
    substitution_providers: dict[str, SubstitutionProvider] = field(
        default_factory=dict
    )


class PluginRegistry:
    """Holds the hooks and substitution providers used by the generator."""

    def __init__(self, dispatcher: HookDispatcher | None = None) -> None:
        """Initialize PluginRegistry."""
        self.dispatcher = dispatcher or HookDispatcher()
        self._providers: dict[str, SubstitutionProvider] = {}
        self.dispatcher.register(
            AFTER_RESOLVE, self._resolve_substitutions, SUBSTITUTION_PRIORITY
        )

    def register_hook(
        self, event: str, handler: HookHandler, priority: int = DEFAULT_PRIORITY
    ) -> None:
        """Register a hook handler for an event."""
        self.dispatcher.register(event, handler, priority)

    def register_substitution_provider(
        self, substitution_type: str, provider: SubstitutionProvider
    ) -> None:
        """Register the provider resolving substitutions of a type."""
        if substitution_type in self._providers:
            raise ValueError(
                f"Substitution provider for '{substitution_type}' already registered"
            )
        self._providers[substitution_type] = provider

    def provider_for(self, substitution_type: str) -> SubstitutionProvider | None:
        """Return the provider for a substitution type, if any."""
        return self._providers.get(substitution_type)

    def load(self, plugin: Plugin) -> None:
        """Register every hook and provider contributed by a plugin."""
        _LOGGER.debug("Loading plugin %s", plugin.name)
        for contribution in plugin.hooks:
            self.register_hook(
                contribution.event, contribution.handler, contribution.priority
            )
        for substitution_type, provider in plugin.substitution_providers.items():
            self.register_substitution_provider(substitution_type, provider)

    async def _resolve_substitutions(
        self, event: str, context: HookContext
    ) -> HookContext:
        """Resolve external substitutions and apply them to the kustomizations."""
        groups = external_substitutions(context.kustomizations)
        for substitution_type, substitutions in groups.items():
            if (provider := self.provider_for(substitution_type)) is None:
                _LOGGER.debug(
                    "No provider for '%s' substitutions, skipping", substitution_type
                )
                continue
            provider_context = SubstitutionContext(
                cluster=context.cluster,
                templates=context.templates,
                config=context.cluster.get_plugin_config(substitution_type) or {},
            )
            try:
                result = provider.resolve(substitutions, provider_context)
                if inspect.isawaitable(result):
                    result = await result
            except SubstitutionResolutionException:
                raise
            except Exception as err:
                raise SubstitutionResolutionException(substitution_type, str(err)) from err
            values = dict(result)
            _LOGGER.debug(
                "Resolved %d '%s' substitutions", len(values), substitution_type
            )
            for resolved in context.kustomizations:
                if not resolved.enabled:
                    continue
                for sub in resolved.kustomization.substitutions:
                    if sub.substitution_type == substitution_type and sub.name in values:
                        resolved.values[sub.name] = values[sub.name]
        return context
