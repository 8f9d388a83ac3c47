"""Module runtime contract and an in-memory reference runtime.

The engine never loads code itself; it drives a :class:`ModuleRuntime`
through install/start/stop/uninstall calls. Those calls may block and are
always issued without holding catalog or state locks.
"""

from __future__ import annotations

import importlib
import inspect
import logging
import threading
from enum import Enum
from typing import Callable, Dict, Iterable, List, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

__all__ = [
    "ModuleRuntime",
    "ModuleStatus",
    "InMemoryModuleRuntime",
    "load_module_runtime",
]


@runtime_checkable
class ModuleRuntime(Protocol):
    """Operations the engine needs from the module-loading runtime."""

    def install(self, locator: str) -> None:
        ...

    def start(self, locator: str) -> None:
        ...

    def stop(self, locator: str) -> None:
        ...

    def uninstall(self, locator: str) -> None:
        ...

    def refresh(self, locators: Iterable[str]) -> None:
        ...


class ModuleStatus(str, Enum):
    INSTALLED = "installed"
    STARTED = "started"


class InMemoryModuleRuntime:
    """Tracks module status in a dictionary.

    ``fail_on`` maps a locator to the operation (``"install"``, ``"start"``,
    ``"stop"`` or ``"uninstall"``) that should raise, which lets tests simulate
    activation failures.
    """

    def __init__(
        self,
        *,
        started: Iterable[str] = (),
        fail_on: Dict[str, str] | None = None,
    ) -> None:
        self._modules: Dict[str, ModuleStatus] = {m: ModuleStatus.STARTED for m in started}
        self.fail_on: Dict[str, str] = dict(fail_on or {})
        self.calls: List[tuple[str, str]] = []
        self._lock = threading.Lock()

    def _maybe_fail(self, operation: str, locator: str) -> None:
        if self.fail_on.get(locator) == operation:
            raise RuntimeError(f"simulated {operation} failure for {locator}")

    def install(self, locator: str) -> None:
        self._maybe_fail("install", locator)
        with self._lock:
            self.calls.append(("install", locator))
            self._modules.setdefault(locator, ModuleStatus.INSTALLED)

    def start(self, locator: str) -> None:
        self._maybe_fail("start", locator)
        with self._lock:
            if locator not in self._modules:
                raise RuntimeError(f"module {locator} is not installed")
            self.calls.append(("start", locator))
            self._modules[locator] = ModuleStatus.STARTED

    def stop(self, locator: str) -> None:
        self._maybe_fail("stop", locator)
        with self._lock:
            self.calls.append(("stop", locator))
            if locator in self._modules:
                self._modules[locator] = ModuleStatus.INSTALLED

    def uninstall(self, locator: str) -> None:
        self._maybe_fail("uninstall", locator)
        with self._lock:
            self.calls.append(("uninstall", locator))
            self._modules.pop(locator, None)

    def refresh(self, locators: Iterable[str]) -> None:
        with self._lock:
            for locator in locators:
                self.calls.append(("refresh", locator))

    # inspection ----------------------------------------------------------------
    def status(self, locator: str) -> ModuleStatus | None:
        with self._lock:
            return self._modules.get(locator)

    def started(self) -> List[str]:
        with self._lock:
            return [m for m, s in self._modules.items() if s is ModuleStatus.STARTED]

    def installed(self) -> List[str]:
        with self._lock:
            return list(self._modules)


RuntimeFactory = Callable[[], ModuleRuntime]


def load_module_runtime(path: str) -> ModuleRuntime:
    """Instantiate the runtime named by ``path`` (``package.module:attr``).

    ``attr`` may be a class or a zero-argument factory.

    Raises:
        ImportError: When the module cannot be imported.
        TypeError: When the object does not satisfy :class:`ModuleRuntime`.
    """

    module_path, _, attribute = path.partition(":")
    if not module_path or not attribute:
        raise ValueError(f"Runtime path must look like 'package.module:attr', got {path!r}")
    module = importlib.import_module(module_path)
    try:
        candidate = getattr(module, attribute)
    except AttributeError as exc:
        raise ImportError(f"{module_path} has no attribute {attribute!r}") from exc

    if not callable(candidate):
        raise TypeError(f"{attribute} from '{module_path}' must be a class or factory")
    runtime = candidate()
    if not isinstance(runtime, ModuleRuntime):
        kind = "class" if inspect.isclass(candidate) else "factory"
        raise TypeError(
            f"{kind} {attribute} from '{module_path}' must implement "
            "install, start, stop, uninstall and refresh"
        )
    logger.info("Loaded module runtime %s", path)
    return runtime
