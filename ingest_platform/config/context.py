from typing import Any

_TRUTHY = ("true", "1", "yes", "on")


class ModuleConfig:
    """Parsed module arguments (from module.json + CLI) with typed access."""

    def __init__(self, args: dict[str, Any]) -> None:
        self._args = args

    def get(self, key: str, default: Any = None) -> Any:
        return self._args.get(key, default)

    def get_int(self, key: str, default: int) -> int:
        value = self._args.get(key)
        if value is None or value == "":
            return default
        return int(value)

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self._args.get(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in _TRUTHY

    def __contains__(self, key: str) -> bool:
        return key in self._args

    def __repr__(self) -> str:
        return f"ModuleConfig({self._args})"
