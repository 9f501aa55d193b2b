"""Priority ordered hooks invoked at phases of generation.

Plugins register handlers for an event. When the event is dispatched the
handlers run one at a time in ascending priority, registration order breaking
ties. Each handler receives the event name and the context and returns the
context passed to the next handler. An exception from a handler stops the
chain.

The generator dispatches these events:

- `generator:after_resolve` after every kustomization has been resolved, used
  to inject externally resolved substitution values.
- `generator:before_write` after the manifests have been generated, used to
  attach additional files through the context extensions.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
import inspect
import logging
from typing import TYPE_CHECKING, Any, TypeVar

from .exceptions import HookException, KustodianException
from .manifest import Cluster, Template

if TYPE_CHECKING:
    from .generator import GenerationResult
    from .substitution import ResolvedKustomization

__all__ = [
    "AFTER_RESOLVE",
    "BEFORE_WRITE",
    "ADDITIONAL_FILES",
    "DEFAULT_PRIORITY",
    "HookContext",
    "HookHandler",
    "HookDispatcher",
]

_LOGGER = logging.getLogger(__name__)

AFTER_RESOLVE = "generator:after_resolve"
BEFORE_WRITE = "generator:before_write"

ADDITIONAL_FILES = "additional_files"
"""Extension holding a dict of relative output path to document to write."""

DEFAULT_PRIORITY = 100

_T = TypeVar("_T")


@dataclass
class HookContext:
    """State shared with hook handlers during a generation run."""

    cluster: Cluster
    templates: list[Template] = field(default_factory=list)
    kustomizations: list["ResolvedKustomization"] = field(default_factory=list)
    """Resolved kustomizations of the templates listed by the cluster."""

    result: "GenerationResult | None" = None
    """The generation result, set before `generator:before_write`."""

    extensions: dict[str, Any] = field(default_factory=dict)
    """Values plugins share with later phases, see `set_extension`."""

    def set_extension(self, key: str, value: Any) -> None:
        """Add a value to the extensions, keys may only be set once."""
        if key in self.extensions:
            raise KeyError(f"Extension '{key}' is already set")
        self.extensions[key] = value

    def get_extension(self, key: str, cls: type[_T]) -> _T | None:
        """Return the extension value for the key, or None if not set.

        Raises TypeError when the value is not an instance of cls.
        """
        if (value := self.extensions.get(key)) is None:
            return None
        if not isinstance(value, cls):
            raise TypeError(
                f"Extension '{key}' has type {type(value).__name__}, expected {cls.__name__}"
            )
        return value


HookHandler = Callable[
    [str, HookContext], HookContext | None | Awaitable[HookContext | None]
]
"""A hook handler, either a function or a coroutine function.

Returning None continues with the context that was passed in.
"""


@dataclass
class _RegisteredHook:
    priority: int
    handler: HookHandler


class HookDispatcher:
    """Registry of hook handlers by event."""

    def __init__(self) -> None:
        """Initialize HookDispatcher."""
        self._hooks: dict[str, list[_RegisteredHook]] = {}

    def register(
        self, event: str, handler: HookHandler, priority: int = DEFAULT_PRIORITY
    ) -> None:
        """Register a handler for an event, lower priorities run first."""
        hooks = self._hooks.setdefault(event, [])
        hooks.append(_RegisteredHook(priority=priority, handler=handler))
        # Stable sort keeps registration order for equal priorities
        hooks.sort(key=lambda hook: hook.priority)

    def has_hooks(self, event: str) -> bool:
        """Return True if any handler is registered for the event."""
        return bool(self._hooks.get(event))

    def events(self) -> list[str]:
        """Return the events with registered handlers."""
        return [event for event, hooks in self._hooks.items() if hooks]

    async def dispatch(self, event: str, context: HookContext) -> HookContext:
        """Run the handlers of an event and return the final context."""
        for hook in list(self._hooks.get(event, ())):
            _LOGGER.debug("Dispatching %s to %s", event, hook.handler)
            try:
                result = hook.handler(event, context)
                if inspect.isawaitable(result):
                    result = await result
            except KustodianException:
                raise
            except Exception as err:
                raise HookException(event, str(err)) from err
            if result is not None:
                context = result
        return context
