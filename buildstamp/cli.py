from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .clock import build_payload
from .config import DEFAULT_PORT, BuildstampConfig, load_config
from .monitor import BuildMonitor


LOG_LEVELS = ["critical", "error", "warning", "info", "debug"]


def eprint(msg: str) -> None:
    print(msg, file=sys.stderr)


def resolve_port(value: Optional[str], default: int = DEFAULT_PORT) -> int:
    """Turn the positional port argument into a TCP port.

    Anything that is not an integer in 1..65535 (missing, non-numeric, zero)
    falls back to ``default``.
    """
    if value is None:
        return default
    try:
        port = int(str(value).strip())
    except ValueError:
        return default
    if port < 1 or port > 65535:
        return default
    return port


def _load_config_or_report(args: argparse.Namespace) -> Optional[BuildstampConfig]:
    path = Path(args.config) if getattr(args, "config", None) else None
    try:
        return load_config(path)
    except (FileNotFoundError, ValueError) as e:
        eprint(str(e))
        return None


def command_serve(args: argparse.Namespace) -> int:
    config = _load_config_or_report(args)
    if config is None:
        return 2

    server_config = config.server
    server_config.port = resolve_port(args.port, default=server_config.port)
    if args.host:
        server_config.host = args.host
    if args.exact:
        server_config.rounding = False

    try:
        import uvicorn
    except ImportError:
        eprint("uvicorn is not installed. Install it with: pip install uvicorn")
        return 1

    from server.api import app, configure

    configure(server_config)

    # uvicorn configures only its own loggers; this gives server.api a handler
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(levelname)s:     %(name)s: %(message)s",
    )

    print(f"Listening on http://{server_config.host}:{server_config.port}/")
    sys.stdout.flush()

    try:
        uvicorn.run(
            app,
            host=server_config.host,
            port=server_config.port,
            log_level=args.log_level,
        )
    except KeyboardInterrupt:
        pass
    return 0


def command_stamp(args: argparse.Namespace) -> int:
    config = _load_config_or_report(args)
    if config is None:
        return 2

    rounding = config.server.rounding and not args.exact
    print(json.dumps(build_payload(rounding=rounding, step=config.server.round_minutes)))
    return 0


def command_monitor(args: argparse.Namespace) -> int:
    config = _load_config_or_report(args)
    if config is None:
        return 2

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not config.monitor.hosts:
        eprint("No hosts configured (monitor.hosts is empty)")
        return 2

    monitor = BuildMonitor(config.monitor)

    if args.once:
        monitor.poll_once()
        status = monitor.get_status()
        if args.json:
            print(json.dumps({name: s.to_dict() for name, s in status.items()}, indent=2))
        else:
            for name, s in status.items():
                d = s.to_dict()
                state = "OK" if s.is_healthy else f"DOWN ({s.error_message})"
                print(f"{name}: {state} buildAt={d['build_at'] or '-'}")
        return 0 if all(s.is_healthy for s in status.values()) else 1

    print(f"Monitoring {len(config.monitor.hosts)} host(s) every {config.monitor.interval} ms")
    try:
        monitor.run()
    except KeyboardInterrupt:
        monitor.stop()
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="buildstamp")
    p.add_argument("-V", "--version", action="version", version=f"buildstamp {__version__}")
    p.add_argument("-c", "--config", default=None, help="Path to buildstamp.yml")
    sub = p.add_subparsers(dest="cmd", required=True)

    # -c is also accepted after the subcommand; SUPPRESS keeps the top-level value
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-c", "--config", default=argparse.SUPPRESS, help="Path to buildstamp.yml")

    sp = sub.add_parser("serve", parents=[common], help="Serve the build timestamp over HTTP")
    sp.add_argument("port", nargs="?", default=None, help="TCP port (default: 8000)")
    sp.add_argument("--host", default=None, help="Interface to bind (default: 127.0.0.1)")
    sp.add_argument("--exact", action="store_true", help="Report the exact time instead of rounding down")
    sp.add_argument("--log-level", default="info", choices=LOG_LEVELS, help="uvicorn log level")
    sp.set_defaults(func=command_serve)

    sp = sub.add_parser("stamp", parents=[common], help="Print one timestamp document and exit")
    sp.add_argument("--exact", action="store_true", help="Report the exact time instead of rounding down")
    sp.set_defaults(func=command_stamp)

    sp = sub.add_parser("monitor", parents=[common], help="Watch hosts for new builds")
    sp.add_argument("--once", action="store_true", help="Check every host once and print the status")
    sp.add_argument("--json", action="store_true", help="With --once, print status as JSON")
    sp.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    sp.set_defaults(func=command_monitor)

    return p


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    rc = int(args.func(args))
    raise SystemExit(rc)
