"""Lifecycle hook registry.

Hosts fire these phases from their agent loop; the failover engine registers
its handlers with install() (see register_callbacks.py). A failing handler is
logged and reported as None so it never stops the others or reaches the host.
"""

import asyncio
import logging
import traceback
from typing import Any, Callable, Dict, List, Literal, Optional

PhaseType = Literal[
    "turn_start",
    "turn_end",
    "custom_command",
    "custom_command_help",
]
CallbackFunc = Callable[..., Any]

_callbacks: Dict[PhaseType, List[CallbackFunc]] = {
    "turn_start": [],
    "turn_end": [],
    "custom_command": [],
    "custom_command_help": [],
}

logger = logging.getLogger(__name__)


def register_callback(phase: PhaseType, func: CallbackFunc) -> None:
    if phase not in _callbacks:
        raise ValueError(f"Unknown hook phase {phase!r}; expected one of {list(_callbacks)}")
    if not callable(func):
        raise TypeError(f"Hook for {phase!r} must be callable, got {type(func)}")

    handlers = _callbacks[phase]
    if func in handlers:
        logger.debug(f"{func.__name__} already hooked into '{phase}'")
        return
    handlers.append(func)
    logger.debug(f"Hooked {func.__name__} into '{phase}'")


def unregister_callback(phase: PhaseType, func: CallbackFunc) -> bool:
    handlers = _callbacks.get(phase)
    if not handlers or func not in handlers:
        return False
    handlers.remove(func)
    logger.debug(f"Unhooked {func.__name__} from '{phase}'")
    return True


def clear_callbacks(phase: Optional[PhaseType] = None) -> None:
    phases = list(_callbacks) if phase is None else [phase]
    for p in phases:
        if p in _callbacks:
            _callbacks[p].clear()


def get_callbacks(phase: PhaseType) -> List[CallbackFunc]:
    return list(_callbacks.get(phase, []))


def count_callbacks(phase: Optional[PhaseType] = None) -> int:
    if phase is None:
        return sum(len(handlers) for handlers in _callbacks.values())
    return len(_callbacks.get(phase, []))


def _log_failure(phase: PhaseType, callback: CallbackFunc, exc: Exception) -> None:
    logger.error(
        f"Hook {callback.__name__} failed in '{phase}': {exc}\n{traceback.format_exc()}"
    )


def _trigger_callbacks_sync(phase: PhaseType, *args, **kwargs) -> List[Any]:
    """Run hooks from synchronous code; coroutine hooks get their own loop."""
    results: List[Any] = []
    for callback in get_callbacks(phase):
        try:
            result = callback(*args, **kwargs)
            if asyncio.iscoroutine(result):
                try:
                    asyncio.get_running_loop()
                except RuntimeError:
                    result = asyncio.run(result)
                else:
                    # Can't block on a coroutine from inside a running loop
                    result.close()
                    logger.warning(
                        f"Async hook {callback.__name__} skipped: '{phase}' was "
                        "triggered synchronously inside a running event loop"
                    )
                    result = None
            results.append(result)
        except Exception as e:
            _log_failure(phase, callback, e)
            results.append(None)
    return results


async def _trigger_callbacks(phase: PhaseType, *args, **kwargs) -> List[Any]:
    results: List[Any] = []
    for callback in get_callbacks(phase):
        try:
            result = callback(*args, **kwargs)
            if asyncio.iscoroutine(result):
                result = await result
            results.append(result)
        except Exception as e:
            _log_failure(phase, callback, e)
            results.append(None)
    return results


async def on_turn_start(event: Any = None) -> List[Any]:
    return await _trigger_callbacks("turn_start", event)


async def on_turn_end(event: Any) -> List[Any]:
    """Trigger turn completion callbacks.

    Args:
        event: The TurnEvent describing the finished assistant turn.

    Returns:
        One entry per callback; the failover handler returns a FailoverResult.
    """
    return await _trigger_callbacks("turn_end", event)


def on_custom_command_help() -> List[Any]:
    """Collect (name, description) tuples for the /ha-* commands."""
    return _trigger_callbacks_sync("custom_command_help")


def on_custom_command(command: str, name: str) -> List[Any]:
    """Trigger custom command callbacks.

    Args:
        command: The full command string (e.g., "/ha-use fast").
        name: The command name without the leading slash (e.g., "ha-use").

    Returns:
        Implementations return True if the command was handled, None otherwise.
    """
    return _trigger_callbacks_sync("custom_command", command, name)
