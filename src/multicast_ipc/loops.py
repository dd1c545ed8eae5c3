"""Asynchronous loop combinators for driving protocol exchanges."""

import inspect
from typing import Any, Awaitable, Callable, TypeVar, Union

T = TypeVar("T")

MaybeAwaitable = Union[T, Awaitable[T]]


async def maybe_await(value: MaybeAwaitable[T]) -> T:
    """Await a value if it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


async def repeat_while(
    condition: Callable[[Any], MaybeAwaitable[bool]],
    action: Callable[[Any], MaybeAwaitable[Any]],
    initial_value: Any = None,
) -> Any:
    """
    Repeat an action while a condition holds. The equivalent of a while loop.

    The condition receives the last value and returns True to keep looping.
    The action is the body of the loop, typically a whole back and forth
    exchange built from send(), broadcast() and wait_for_message(); its
    result becomes the next last value.

    Iterations run inside a single coroutine, so an arbitrarily long
    exchange keeps a constant stack depth.

    Args:
        condition: Called with the last value, returns whether to continue
        action: Called with the last value, returns the next value
        initial_value: First value passed to the condition

    Returns:
        The last value, once the condition returns False

    Raises:
        Exception: Whatever the condition or action raises
    """
    last_value = initial_value
    while await maybe_await(condition(last_value)):
        last_value = await maybe_await(action(last_value))
    return last_value


async def repeat_for(count: int, fn: Callable[[], MaybeAwaitable[Any]]) -> int:
    """
    Call fn a fixed number of times, one call after the other.

    Args:
        count: Number of times fn should be called
        fn: The function to repeat (its result is ignored)

    Returns:
        0 once all calls completed, or count unchanged if count <= 0

    Raises:
        Exception: Whatever fn raises; remaining calls are skipped
    """
    async def step(remaining: int) -> int:
        await maybe_await(fn())
        return remaining - 1

    return await repeat_while(lambda remaining: remaining > 0, step, count)
