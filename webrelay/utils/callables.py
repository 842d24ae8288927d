import inspect
from typing import Any, Callable, Optional


def positional_arity(fn: Callable) -> Optional[int]:
    """Number of positional parameters ``fn`` takes, or None if it takes ``*args``."""
    try:
        parameters = inspect.signature(fn).parameters.values()
    except (TypeError, ValueError):
        return None

    count = 0
    for parameter in parameters:
        if parameter.kind is inspect.Parameter.VAR_POSITIONAL:
            return None
        if parameter.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
        ):
            count += 1
    return count


async def maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result
