import inspect
from typing import Any, TypeVar, get_type_hints

T = TypeVar("T")


class Container:
    """Constructor-based DI container.

    Holds the process-wide service instances (database, message queue, logger
    factory, ...) and builds modules by matching constructor type hints against
    the registered types. Parameters with a default value may be left
    unregistered; everything else must be resolvable.
    """

    def __init__(self) -> None:
        self._registry: dict[type, Any] = {}

    def register_instance(self, type_key: type, instance: Any) -> None:
        """Register a pre-built instance keyed by its type."""
        self._registry[type_key] = instance

    def get(self, type_key: type[T]) -> T:
        """Return the instance registered for *type_key*."""
        if type_key not in self._registry:
            raise KeyError(f"No registration found for type {type_key.__name__!r}")
        return self._registry[type_key]

    def resolve(self, cls: type[T]) -> T:
        """Instantiate *cls* by injecting registered dependencies into its constructor."""
        try:
            hints = get_type_hints(cls.__init__)
        except Exception as exc:
            raise TypeError(f"Cannot read type hints for {cls.__name__}.__init__: {exc}") from exc

        hints.pop("return", None)

        sig = inspect.signature(cls.__init__)
        kwargs: dict[str, Any] = {}
        for name, param in sig.parameters.items():
            if name == "self" or param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                continue
            hint = hints.get(name)
            if hint is None:
                raise TypeError(
                    f"Parameter '{name}' of {cls.__name__}.__init__ has no type hint"
                )
            if hint in self._registry:
                kwargs[name] = self._registry[hint]
            elif param.default is not inspect.Parameter.empty:
                continue
            else:
                hint_name = getattr(hint, "__name__", repr(hint))
                raise TypeError(
                    f"No registration found for type {hint_name!r} "
                    f"(parameter '{name}' of {cls.__name__}.__init__)"
                )

        return cls(**kwargs)

    def has(self, type_key: type) -> bool:
        """Check whether a type is registered."""
        return type_key in self._registry
