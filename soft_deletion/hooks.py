"""
After-soft-delete hook registry.

Hooks are registered per mapped class and fire, in registration order, after
a soft deletion has been committed. They never fire for physical deletes or
for undeletes. Registration is expected at startup; registering while
deletions are in flight is the caller's responsibility.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .config import SoftDeletionConfig, get_config
from .descriptors import DescriptorTable
from .exceptions import describe_record

logger = logging.getLogger(__name__)

# A callable receiving the record, or the name of a method on the record
Hook = Union[Callable[[Any], Any], str]


@dataclass
class HookError:
    """A hook that raised while being notified of a soft deletion."""

    record: Any
    hook: Hook
    error: Exception

    @property
    def hook_name(self) -> str:
        if isinstance(self.hook, str):
            return self.hook
        return getattr(self.hook, "__qualname__", repr(self.hook))


class HookRegistry:
    """
    Ordered after-soft-delete hooks per mapped class.

    Usage:
        hooks = HookRegistry()
        hooks.register(Category, notify_moderators, "clear_cache")

        @hooks.on(Forum)
        def reindex(forum):
            ...
    """

    def __init__(
        self,
        descriptors: Optional[DescriptorTable] = None,
        config: Optional[SoftDeletionConfig] = None,
    ):
        self._descriptors = descriptors
        self._config = config
        self._hooks: Dict[type, List[Hook]] = {}

    def register(self, model: type, *hooks: Hook) -> None:
        """
        Append hooks to the model's hook list.

        Raises:
            UnconfiguredType: If bound to a descriptor table that does not
                know the model
            ValueError: If no hooks are given
            TypeError: If a hook is neither callable nor a method name
        """
        if not hooks:
            raise ValueError("At least one hook is required")
        for hook in hooks:
            if not (callable(hook) or isinstance(hook, str)):
                raise TypeError(f"Hook {hook!r} is not callable or a method name")

        if self._descriptors is not None:
            self._descriptors.get(model)

        self._hooks.setdefault(model, []).extend(hooks)

    def on(self, model: type) -> Callable[[Callable[[Any], Any]], Callable[[Any], Any]]:
        """Decorator form of :meth:`register`."""

        def decorator(func: Callable[[Any], Any]) -> Callable[[Any], Any]:
            self.register(model, func)
            return func

        return decorator

    def clear(self, model: Optional[type] = None) -> None:
        """Reset the hook list of one model, or of every model."""
        if model is None:
            self._hooks.clear()
        else:
            self._hooks.pop(model, None)

    def hooks_for(self, model: type) -> Tuple[Hook, ...]:
        return tuple(self._hooks.get(model, ()))

    def __len__(self) -> int:
        return sum(len(hooks) for hooks in self._hooks.values())

    def fire(self, record: Any) -> List[HookError]:
        """
        Notify every hook of the record's class.

        A failing hook does not stop the remaining ones. Return values are
        ignored and nothing is retried.

        Returns:
            Failures, in hook order
        """
        config = self._config if self._config is not None else get_config()
        failures: List[HookError] = []

        for hook in self.hooks_for(type(record)):
            try:
                if isinstance(hook, str):
                    getattr(record, hook)()
                else:
                    hook(record)
            except Exception as e:
                failure = HookError(record=record, hook=hook, error=e)
                failures.append(failure)
                if config.log_hook_failures:
                    logger.exception(
                        f"After-soft-delete hook {failure.hook_name} failed for "
                        f"{describe_record(record)}"
                    )

        return failures


# Process-wide registry
_registry: Optional[HookRegistry] = None


def get_hook_registry() -> HookRegistry:
    """
    Get the process-wide hook registry.

    Returns:
        Global hook registry
    """
    global _registry

    if _registry is None:
        _registry = HookRegistry()

    return _registry
