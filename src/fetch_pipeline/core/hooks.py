"""
Hook runner: executes the hooks registered for a hook point, in order.
"""
import inspect
import logging
from typing import Any

from ..errors import FetchError, RequestError
from ..types import HookName

logger = logging.getLogger("fetch_pipeline.hooks")


class HookRunner:
    """
    Runs hook lists from the resolved options.

    Hooks are awaited one at a time so a later hook sees the mutations made
    by an earlier one. The hook list is read from ``options`` on every run,
    so the options of a redirect hop carry their own hooks.
    """

    async def run(self, name: HookName, options: Any, *args: Any) -> None:
        """
        Run every hook registered for ``name``.

        Raises:
            FetchError: Raised by a hook, propagated unchanged
            RequestError: Any other hook failure, with code EHOOK
        """
        hooks = tuple(options.hooks.get(name, ()))
        if hooks:
            logger.debug(f"HookRunner.run: {name.value} ({len(hooks)} hook(s))")
        for index, hook in enumerate(hooks):
            try:
                result = hook(options, *args)
                if inspect.isawaitable(result):
                    await result
            except FetchError:
                raise
            except Exception as e:
                logger.debug(f"HookRunner.run: {name.value}[{index}] raised {type(e).__name__}")
                raise RequestError(
                    f"{name.value} hook failed: {e}", options, code="EHOOK"
                ) from e
