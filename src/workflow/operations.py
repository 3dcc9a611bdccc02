from __future__ import annotations

import argparse
import re
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence


class Operation(Enum):
    SEARCH = "search"
    FOLDER = "folder"
    GET_ITEM = "getitem"
    CONFIG = "conf"
    AUTH = "auth"
    AUTH_CONFIG = "authconfig"
    SET_CONFIGS = "setconfigs"
    LOGIN = "login"
    LOGOUT = "logout"
    LOCK = "lock"
    UNLOCK = "unlock"
    SYNC = "sync"
    ICONS = "icons"
    OPEN = "open"


@dataclass(frozen=True)
class Invocation:
    operation: Operation = Operation.SEARCH
    args: List[str] = field(default_factory=list)
    item_id: str = ""
    attachment: str = ""
    force: bool = False
    totp: bool = False
    last: bool = False
    background: bool = False

    @property
    def query(self) -> str:
        return " ".join(self.args).strip()


_HELP = {
    Operation.SEARCH: "run a new search with options",
    Operation.FOLDER: "filter Bitwarden folders",
    Operation.GET_ITEM: "get an item, or one field of it",
    Operation.CONFIG: "show/filter configuration",
    Operation.AUTH: "show/filter auth configuration",
    Operation.AUTH_CONFIG: "display auth config options",
    Operation.SET_CONFIGS: "set configs",
    Operation.LOGIN: "login to Bitwarden",
    Operation.LOGOUT: "logout Bitwarden",
    Operation.LOCK: "lock Bitwarden",
    Operation.UNLOCK: "unlock Bitwarden",
    Operation.SYNC: "sync secrets",
    Operation.ICONS: "get favicons",
    Operation.OPEN: "open specified file or URL in default app",
}


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="bw-alfred",
        description="Alfred workflow to get secrets from Bitwarden.",
        allow_abbrev=False,
    )
    ops = p.add_mutually_exclusive_group()
    for op in Operation:
        ops.add_argument(
            f"-{op.value}",
            dest="operation",
            action="store_const",
            const=op,
            help=_HELP[op],
        )
    p.set_defaults(operation=Operation.SEARCH)

    p.add_argument("-id", dest="item_id", default="", help="item or folder id")
    p.add_argument("-attachment", default="", help="attachment id to download")
    p.add_argument("-force", action="store_true", help="force full sync")
    p.add_argument("-totp", action="store_true", help="get TOTP for item id")
    p.add_argument("-last", action="store_true", help="show date of last sync")
    p.add_argument("-background", action="store_true", help="run job in background")
    p.add_argument("args", nargs="*", help="query, setting and value, or path")
    return p


_OPTIONS = ("-id", "-attachment", "-force", "-totp", "-last", "-background")
_KNOWN_FLAGS = frozenset({f"-{op.value}" for op in Operation} | set(_OPTIONS) | {"-h", "--help"})
_NEGATIVE_NUMBER = re.compile(r"^-\d+$|^-\d*\.\d+$")


def _reject_unknown_flags(parser: argparse.ArgumentParser, argv: Sequence[str]) -> None:
    # argparse still matches single-dash prefixes (`-sea`) on some Python versions
    for token in argv:
        if token == "--":
            return
        if len(token) < 2 or not token.startswith("-") or _NEGATIVE_NUMBER.match(token):
            continue
        if token.split("=", 1)[0] not in _KNOWN_FLAGS:
            parser.error(f"unrecognized arguments: {token}")


def parse_invocation(argv: Optional[Sequence[str]] = None) -> Invocation:
    argv = sys.argv[1:] if argv is None else list(argv)
    parser = build_parser()
    _reject_unknown_flags(parser, argv)
    ns = parser.parse_args(argv)
    return Invocation(
        operation=ns.operation,
        args=list(ns.args),
        item_id=ns.item_id.strip(),
        attachment=ns.attachment.strip(),
        force=ns.force,
        totp=ns.totp,
        last=ns.last,
        background=ns.background,
    )
