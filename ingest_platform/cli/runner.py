from __future__ import annotations

import asyncio
import importlib
import json
import sys
from pathlib import Path
from typing import Any

from ingest_platform.config.container import Container
from ingest_platform.config.context import ModuleConfig
from ingest_platform.config.env_loader import load_env_file
from ingest_platform.modules.base import AsyncModule
from ingest_platform.services.health.health_server import HealthCheckServer
from ingest_platform.services.lifecycle.lifecycle_manager import LifecycleManager
from ingest_platform.services.logger.factory import LoggerFactory
from ingest_platform.services.metrics.interface import MetricsInterface
from ingest_platform.services.registry import (
    REGISTRY,
    resolve_implementation,
    resolve_interface_type,
)
from ingest_platform.services.secrets.env_secrets import EnvSecrets
from ingest_platform.services.secrets.interface import SecretsInterface

MODULES_DIR = Path(__file__).resolve().parent.parent / "modules"

USAGE = "Usage: python -m ingest_platform run <module_name> [flags] [module args]"

# Global flags that select interface implementations.
# Maps flag name -> default value (None = not registered unless explicitly requested).
_GLOBAL_FLAGS: dict[str, str | None] = {
    "db": None,
    "fs": None,
    "mq": None,
    "metrics": None,
    "notifier": None,
    "log": "pretty",
}

_FLAG_LABELS: dict[str, str] = {
    "db": "Database",
    "fs": "File system",
    "mq": "Message queue",
    "metrics": "Metrics",
    "notifier": "Email sender",
    "log": "Logging format",
}

# Module types that get a health check server and lifecycle signal handling
_SERVICE_TYPES = {"service", "worker"}


def load_module_descriptor(module_name: str) -> dict[str, Any]:
    module_json = MODULES_DIR / module_name / "module.json"
    if not module_json.exists():
        raise FileNotFoundError(f"module '{module_name}' not found at {module_json}")
    with open(module_json) as f:
        return json.load(f)


def parse_module_args(descriptor: dict[str, Any], raw_args: list[str]) -> dict[str, Any]:
    """Parse CLI args against the module.json arg definitions."""
    arg_defs: list[dict[str, Any]] = descriptor.get("args", [])
    parsed: dict[str, Any] = {}

    i = 0
    while i < len(raw_args):
        arg = raw_args[i]
        if arg.startswith("--"):
            key = arg[2:]
            if i + 1 < len(raw_args) and not raw_args[i + 1].startswith("--"):
                parsed[key] = raw_args[i + 1]
                i += 2
            else:
                parsed[key] = "true"
                i += 1
        else:
            i += 1

    result: dict[str, Any] = {}
    errors: list[str] = []

    for arg_def in arg_defs:
        name = arg_def["name"]
        if name in parsed:
            try:
                result[name] = _cast_value(parsed[name], arg_def.get("type", "string"))
            except ValueError:
                errors.append(f"Invalid value for --{name}: '{parsed[name]}' (expected {arg_def['type']})")
                continue
        elif "default" in arg_def:
            result[name] = arg_def["default"]
        elif arg_def.get("required", False):
            errors.append(f"Missing required argument: --{name}")

        if name in result and "choices" in arg_def:
            if result[name] not in arg_def["choices"]:
                errors.append(
                    f"Invalid value for --{name}: '{result[name]}' "
                    f"(choices: {', '.join(str(c) for c in arg_def['choices'])})"
                )

    if errors:
        raise ValueError("; ".join(errors))

    return result


def _cast_value(value: str, type_name: str) -> Any:
    match type_name:
        case "integer":
            return int(value)
        case "float":
            return float(value)
        case "boolean":
            return value.lower() in ("true", "1", "yes")
        case _:
            return value


def _parse_env_overrides(raw: str) -> dict[str, str]:
    """Parse a JSON string into env overrides. Validates types."""
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("--env value must be a JSON object")
    for k, v in data.items():
        if not isinstance(k, str) or not isinstance(v, str):
            raise ValueError("--env JSON must have string keys and string values")
    return data


def _extract_global_flags(
    remaining: list[str],
) -> tuple[dict[str, str], dict[str, str], list[str], int]:
    """Extract global flags from remaining args.

    Returns (impl_flags, env_overrides, filtered_module_args, health_port).
    impl_flags maps flag names (db, fs, mq, metrics, notifier, log) to the selected impl.
    """
    impl_flags: dict[str, str] = {}
    env_overrides: dict[str, str] = {}
    env_file: str | None = None
    health_port: int = 8080
    filtered_args: list[str] = []

    all_flag_names = set(_GLOBAL_FLAGS.keys()) | {"env", "env-file", "health-port"}

    i = 0
    while i < len(remaining):
        flag = remaining[i]
        if flag.startswith("--") and flag[2:] in all_flag_names and i + 1 < len(remaining):
            name = flag[2:]
            value = remaining[i + 1]
            if name == "env":
                env_overrides.update(_parse_env_overrides(value))
            elif name == "env-file":
                env_file = value
            elif name == "health-port":
                health_port = int(value)
            else:
                impl_flags[name] = value
            i += 2
        else:
            filtered_args.append(remaining[i])
            i += 1

    if env_file:
        # File vars are lower priority; --env overrides win
        merged = dict(load_env_file(env_file))
        merged.update(env_overrides)
        env_overrides = merged

    if "log" in impl_flags and "LOG_IMPL" not in env_overrides:
        env_overrides["LOG_IMPL"] = impl_flags["log"]

    return impl_flags, env_overrides, filtered_args, health_port


def print_module_help(descriptor: dict[str, Any]) -> None:
    version = descriptor.get("version", "")
    version_suffix = f" v{version}" if version else ""
    print(f"\n  {descriptor['display_name']}{version_suffix}")
    print(f"  {descriptor['description']}\n")
    module_type = descriptor.get("type")
    if module_type:
        print(f"  Type: {module_type}")
        print()

    args = descriptor.get("args", [])
    if args:
        print("  Module arguments:")
        for arg in args:
            required = " (required)" if arg.get("required") else ""
            default = f" [default: {arg['default']}]" if "default" in arg else ""
            choices_list = arg.get("choices")
            choices = (
                f" (choices: {', '.join(str(c) for c in choices_list)})"
                if choices_list
                else ""
            )
            print(f"    --{arg['name']:20s} {arg['description']}{required}{default}{choices}")
        print()

    print("  Global flags:")
    for flag, label in _FLAG_LABELS.items():
        impls = ", ".join(REGISTRY[flag]) if flag in REGISTRY else "pretty, json, memory"
        default = _GLOBAL_FLAGS[flag] or ("noop" if flag == "metrics" else "none")
        print(f"    --{flag:20s} {label}: {impls} [default: {default}]")
    print(f"    --{'health-port':20s} Health check HTTP port (service/worker only) [default: 8080]")
    print(f"    --{'env':20s} JSON string of env var overrides")
    print(f"    --{'env-file':20s} Environment file name (loads .env/<name>.env)")
    print()


def _get_init_hints(cls: type) -> dict[str, Any]:
    """Get type hints for cls.__init__, returning empty dict on failure."""
    try:
        from typing import get_type_hints

        hints = get_type_hints(cls.__init__)
        hints.pop("return", None)
        return hints
    except (NameError, TypeError, AttributeError):
        return {}


def _register_health_check(server: HealthCheckServer, name: str, instance: Any) -> None:
    """Readiness probes run on the event loop: prefer native async checks."""
    if hasattr(instance, "health_check_async"):
        server.register_check(name, instance.health_check_async)
    elif hasattr(instance, "health_check"):
        server.register_check(name, lambda: asyncio.to_thread(instance.health_check))
    elif hasattr(instance, "verify"):
        server.register_check(name, instance.verify)


def _build_container(
    impl_flags: dict[str, str],
    env_overrides: dict[str, str],
    module_args: dict[str, Any],
    health_port: int = 8080,
    module_type: str = "job",
) -> Container:
    """Build the DI container with all registered services."""
    container = Container()
    container.register_instance(Container, container)

    # 1. Bootstrap secrets (always available)
    secrets = EnvSecrets(overrides=env_overrides)
    container.register_instance(SecretsInterface, secrets)
    container.register_instance(ModuleConfig, ModuleConfig(module_args))

    # 2. Logger factory: --log flag takes precedence, then LOG_IMPL env override
    log_impl = impl_flags.get("log") or env_overrides.get("LOG_IMPL", "pretty")
    container.register_instance(LoggerFactory, LoggerFactory(default_impl=log_impl))

    # 3. Lifecycle manager (always registered so any module can use it)
    lifecycle = LifecycleManager()
    container.register_instance(LifecycleManager, lifecycle)

    # 4. Health check server (for service/worker modules)
    health_server: HealthCheckServer | None = None
    if module_type in _SERVICE_TYPES:
        health_server = HealthCheckServer(port=health_port)
        lifecycle.set_health_server(health_server)
        container.register_instance(HealthCheckServer, health_server)

    # 5. Register each requested interface implementation
    for flag_name, impl_name in impl_flags.items():
        if flag_name == "log":
            continue
        impl_cls = resolve_implementation(flag_name, impl_name)
        interface_type = resolve_interface_type(flag_name)

        if _get_init_hints(impl_cls):
            instance = container.resolve(impl_cls)
        else:
            instance = impl_cls()
        container.register_instance(interface_type, instance)

        if health_server is not None and flag_name != "metrics":
            _register_health_check(health_server, flag_name, instance)

    # 6. MetricsInterface is always available (NoopMetrics as default)
    if not container.has(MetricsInterface):
        from ingest_platform.services.metrics.noop_metrics import NoopMetrics

        container.register_instance(MetricsInterface, NoopMetrics())

    return container


async def _run_service_module(module_instance: AsyncModule, container: Container) -> int:
    """Run a service/worker module with health check server and lifecycle management."""
    lifecycle = container.get(LifecycleManager)
    health_server = container.get(HealthCheckServer)

    await health_server.start()
    lifecycle.install_signal_handlers(loop=asyncio.get_running_loop())

    try:
        health_server.mark_started()
        exit_code = await module_instance.run()
    finally:
        await lifecycle.shutdown()
        _report_shutdown_errors(container)

    return exit_code


async def _run_job_module(module_instance: AsyncModule, container: Container) -> int:
    lifecycle = container.get(LifecycleManager)
    try:
        return await module_instance.run()
    finally:
        await lifecycle.shutdown()
        _report_shutdown_errors(container)


def _report_shutdown_errors(container: Container) -> None:
    lifecycle = container.get(LifecycleManager)
    if not lifecycle.errors:
        return
    log = container.get(LoggerFactory).create()
    for hook_name, exc in lifecycle.errors:
        log.error("Shutdown hook failed", hook=hook_name, error=str(exc))


def run_module(argv: list[str]) -> tuple[int, AsyncModule | None]:
    """Testable entry point: parses args, builds container, runs module, returns (exit_code, module)."""
    if len(argv) < 2 or argv[0] != "run":
        raise ValueError(USAGE)

    module_name = argv[1]
    remaining = argv[2:]

    descriptor = load_module_descriptor(module_name)

    if "--help" in remaining or "-h" in remaining:
        print_module_help(descriptor)
        return (0, None)

    module_type = descriptor.get("type", "job")

    impl_flags, env_overrides, filtered_args, health_port = _extract_global_flags(remaining)
    module_args = parse_module_args(descriptor, filtered_args)

    container = _build_container(
        impl_flags, env_overrides, module_args,
        health_port=health_port, module_type=module_type,
    )

    mod = importlib.import_module(f"ingest_platform.modules.{module_name}.main")
    if not hasattr(mod, "module_class"):
        raise AttributeError(
            f"Module 'ingest_platform.modules.{module_name}.main' must define a 'module_class' attribute"
        )

    module_instance = container.resolve(mod.module_class)

    if module_type in _SERVICE_TYPES:
        exit_code = asyncio.run(_run_service_module(module_instance, container))
    else:
        exit_code = asyncio.run(_run_job_module(module_instance, container))

    return (exit_code, module_instance)


def run_cli(argv: list[str] | None = None) -> None:
    args = argv if argv is not None else sys.argv[1:]
    try:
        exit_code, _ = run_module(args)
        sys.exit(exit_code)
    except (ValueError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
