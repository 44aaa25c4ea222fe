from __future__ import annotations

import argparse
import importlib.metadata
import traceback


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="peerchat",
        description="Peer-to-peer chat node: identity, history and loopback demo",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=importlib.metadata.version("peerchat"),
    )

    from peerchat.chat_cli import add_global_args, register_subcommands, run

    add_global_args(parser)
    sub = parser.add_subparsers(dest="command")
    register_subcommands(sub)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    from peerchat.p2p.logging_setup import configure_logging

    configure_logging(
        "DEBUG" if args.debug else "WARNING",
        file_logging=args.command != "export-logs",
    )

    try:
        return run(args)
    except Exception as exc:  # noqa: BLE001
        if args.debug:
            print(f"[debug] error: {exc}")
            traceback.print_exc()
        else:
            print(f"error: {exc}")
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
