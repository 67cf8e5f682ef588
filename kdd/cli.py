"""kdd command line.

Usage::

    kdd build                 # build all blocks
    kdd build web,web-server  # build some blocks (and their dependencies)
    kdd watch web             # start the watch-mode builders
    kdd dbuild                # build + container build (+ push to local registry)
    kdd dpush web-server      # push images to the current realm registry
    kdd realm [name]          # list realms, or switch to one
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Optional

from kdd import __version__
from kdd.build import Orchestrator
from kdd.config import KddConfig, Settings
from kdd.errors import KddError, NoRealmError
from kdd.realm import Kubectl, current_realm, print_realms, realm_set
from kdd.utils import console, print_error, print_success


def split_names(value: Optional[str]) -> Optional[list[str]]:
    """``"a,b"`` -> ``["a", "b"]``; ``None`` stays ``None`` (all blocks)."""
    if value is None:
        return None
    return [name.strip() for name in value.split(",") if name.strip()]


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _add_root_dir(parser: argparse.ArgumentParser, default: Optional[str]) -> None:
    parser.add_argument(
        "-d", "--root-dir",
        dest="root_dir",
        default=default,
        help="The root dir where the driving kdd.yaml reside (default: ./)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kdd",
        description="Kubernetes Driven Development and Deployment",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    _add_root_dir(parser, "./")

    sub = parser.add_subparsers(dest="command")

    blocks_help = "Comma delimited block names (no space)"
    for name, about in (
        ("build", "Build one or more block"),
        ("watch", "Watch one or more block"),
        ("dbuild", "Build and docker build one or more block"),
        ("dpush", "Docker push one or more block to a realm"),
    ):
        cmd = sub.add_parser(name, help=about, description=about)
        cmd.add_argument("blocks", nargs="?", default=None, help=blocks_help)
        _add_root_dir(cmd, argparse.SUPPRESS)

    realm_cmd = sub.add_parser(
        "realm",
        help="Show the available realms or set the current realm",
        description="Show the available realms or set the current realm",
    )
    realm_cmd.add_argument("name", nargs="?", default=None, help="Realm name to change to")
    _add_root_dir(realm_cmd, argparse.SUPPRESS)

    return parser


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def run(args: argparse.Namespace, settings: Settings) -> None:
    config = KddConfig.load(args.root_dir)
    orchestrator = Orchestrator(config, settings)
    names = split_names(getattr(args, "blocks", None))

    if args.command == "build":
        await orchestrator.build(names, packaging=False)
    elif args.command == "dbuild":
        await orchestrator.build(names, packaging=True)
    elif args.command == "watch":
        await orchestrator.watch(names)
    elif args.command == "dpush":
        realm = await current_realm(orchestrator.kubectl)
        if realm is None:
            raise NoRealmError()
        await orchestrator.publish(realm, names)
    elif args.command == "realm":
        kubectl: Kubectl = orchestrator.kubectl
        if args.name:
            console.print(f"Change realm to {args.name}", markup=False)
            await realm_set(kubectl, args.name)
        await print_realms(kubectl)


def main(argv: Optional[list[str]] = None) -> None:
    """CLI entry point for ``kdd`` / ``python -m kdd``."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return

    try:
        asyncio.run(run(args, Settings.from_env()))
    except KddError as exc:
        print_error(f"Error:\n  {exc}")
        sys.exit(1)
    except KeyboardInterrupt:
        print_error("Interrupted")
        sys.exit(130)

    print_success("✔ All good and well")


if __name__ == "__main__":
    main()
