"""Before/after hook composition around tool execution."""

from __future__ import annotations

import dataclasses
import inspect
import logging
from typing import Any, Awaitable, Callable, Sequence, Union

from vibekit.context import InvocationContext
from vibekit.protocol import is_protocol_result
from vibekit.skills import Tool

logger = logging.getLogger(__name__)

# A before hook returns replacement args, or a Task/Message to stop the chain.
BeforeHook = Callable[[Any, InvocationContext], Union[Any, Awaitable[Any]]]
# An after hook receives (result, context, args) and returns the new result.
AfterHook = Callable[[Any, InvocationContext, Any], Union[Any, Awaitable[Any]]]


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _as_chain(hooks: Any) -> tuple:
    if hooks is None:
        return ()
    if callable(hooks):
        return (hooks,)
    return tuple(hooks)


def compose_before(hooks: Sequence[BeforeHook] | BeforeHook) -> BeforeHook:
    """Compose before hooks into one, run in declaration order.

    The first hook that returns a Task or Message ends the chain and that
    value is returned; later hooks do not run.

    Args:
        hooks: Ordered hooks (a single hook is accepted too)

    Returns:
        A single before hook
    """
    chain = _as_chain(hooks)

    async def before(args: Any, context: InvocationContext) -> Any:
        current = args
        for hook in chain:
            result = await maybe_await(hook(current, context))
            if is_protocol_result(result):
                logger.debug(f"Before hook {getattr(hook, '__name__', hook)!r} short-circuited")
                return result
            current = result
        return current

    return before


def compose_after(hooks: Sequence[AfterHook] | AfterHook) -> AfterHook:
    """Compose after hooks into one; every hook runs, each on the previous output."""
    chain = _as_chain(hooks)

    async def after(result: Any, context: InvocationContext, args: Any) -> Any:
        current = result
        for hook in chain:
            current = await maybe_await(hook(current, context, args))
        return current

    return after


def with_hooks(
    tool: Tool,
    before: Sequence[BeforeHook] | BeforeHook | None = None,
    after: Sequence[AfterHook] | AfterHook | None = None,
) -> Tool:
    """Wrap a tool with before/after chains.

    A before short-circuit returns its Task/Message without calling the tool
    or the after chain.

    Args:
        tool: Tool to wrap
        before: Hooks transforming args or vetoing execution
        after: Hooks transforming the result

    Returns:
        A new Tool with the same name, description and parameters
    """
    before_chain = _as_chain(before)
    after_chain = _as_chain(after)
    run_before = compose_before(before_chain) if before_chain else None
    run_after = compose_after(after_chain) if after_chain else None
    inner = tool.execute

    async def execute(args: Any, context: InvocationContext) -> Any:
        if run_before is not None:
            args = await run_before(args, context)
            if is_protocol_result(args):
                return args
        result = await maybe_await(inner(args, context))
        if run_after is not None:
            result = await run_after(result, context, args)
        return result

    return dataclasses.replace(tool, execute=execute)
