from __future__ import annotations

import logging
import os
import sys
from typing import Callable, Dict, Mapping, Optional, Sequence

from common.feedback import Feedback
from common.jobs import JOB_ENV, BackgroundJobs
from .actions import (
    WorkflowFatalError,
    run_icons,
    run_lock,
    run_login,
    run_logout,
    run_open,
    run_set_configs,
    run_sync,
    run_unlock,
)
from .context import Context
from .menus import run_auth, run_auth_config, run_config
from .operations import Invocation, Operation, parse_invocation
from .search import is_value_request, run_folder, run_get_item, run_search


logger = logging.getLogger(__name__)

_LOG_HANDLER_NAME = "bw-alfred"

ListHandler = Callable[[Context, Invocation, Feedback], object]
TextHandler = Callable[[Context, Invocation], object]

# Operations that answer with an Alfred result list
_LIST_HANDLERS: Dict[Operation, ListHandler] = {
    Operation.SEARCH: run_search,
    Operation.FOLDER: run_folder,
    Operation.GET_ITEM: run_get_item,
    Operation.CONFIG: run_config,
    Operation.AUTH: run_auth,
    Operation.AUTH_CONFIG: run_auth_config,
}

# Operations that answer with plain text (notification / copied value)
_TEXT_HANDLERS: Dict[Operation, TextHandler] = {
    Operation.SET_CONFIGS: run_set_configs,
    Operation.LOGIN: run_login,
    Operation.LOGOUT: run_logout,
    Operation.LOCK: run_lock,
    Operation.UNLOCK: run_unlock,
    Operation.SYNC: run_sync,
    Operation.ICONS: run_icons,
    Operation.OPEN: run_open,
}

_unhandled = set(Operation) - set(_LIST_HANDLERS) - set(_TEXT_HANDLERS)
if _unhandled:
    raise RuntimeError(f"No handler for operations: {sorted(o.value for o in _unhandled)}")


def dispatch(ctx: Context, inv: Invocation) -> None:
    """Run the one handler for `inv.operation`."""
    logger.debug("operation=%s id=%r", inv.operation.value, inv.item_id)
    list_handler = _LIST_HANDLERS.get(inv.operation)
    if list_handler is not None:
        fb = Feedback()
        list_handler(ctx, inv, fb)
        # get-item with a field path prints the value instead of a list
        if inv.operation is Operation.GET_ITEM and is_value_request(inv):
            return
        ctx.echo(fb.to_json())
        return
    _TEXT_HANDLERS[inv.operation](ctx, inv)


def configure_logging(debug: bool) -> None:
    """Log to stderr, which Alfred shows in its workflow debugger."""
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if debug else logging.INFO)
    for existing in [h for h in root.handlers if h.get_name() == _LOG_HANDLER_NAME]:
        root.removeHandler(existing)
    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(_LOG_HANDLER_NAME)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    ))
    root.addHandler(handler)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def run_once(
    argv: Optional[Sequence[str]] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
    ctx: Optional[Context] = None,
) -> int:
    """Parse `argv`, run one operation, and return the process exit code."""
    env = os.environ if env is None else env
    inv = parse_invocation(argv)
    ctx = ctx or Context.from_env(env)
    configure_logging(ctx.config.debug)

    job = env.get(JOB_ENV)
    try:
        dispatch(ctx, inv)
    except WorkflowFatalError as exc:
        logger.error("%s", exc)
        print(str(exc), file=sys.stderr)
        return 1
    finally:
        if job and isinstance(ctx.jobs, BackgroundJobs):
            ctx.jobs.release(job)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> None:
    sys.exit(run_once(argv))


if __name__ == "__main__":
    main()
