# ===-----------------------------------------------------------------------===#
# Distributed under the 3-Clause BSD License. See accompanying file LICENSE or
# copy at https://opensource.org/licenses/BSD-3-Clause.
# SPDX-License-Identifier: BSD-3-Clause
# ===-----------------------------------------------------------------------===#

"""Command line interface for gltfmodel."""

from __future__ import annotations

import argparse
import dataclasses
import json
import sys
from pathlib import Path

from .api import load
from .errors import LoadError
from .logging import configure_logging, section, step
from .options import LoadOptions, load_options
from .reporting import (
    PlainReporter,
    RichReporter,
    SilentReporter,
    get_reporter,
    set_reporter,
    set_verbosity,
)


def _options(args: argparse.Namespace) -> LoadOptions:
    base = (
        load_options(args.config) if args.config is not None else LoadOptions()
    )
    overrides = {}
    if getattr(args, "names", False):
        overrides["names"] = True
    if getattr(args, "extras", False):
        overrides["extras"] = True
    if getattr(args, "no_materials", False):
        overrides["load_materials"] = False
    opts = dataclasses.replace(base, **overrides).from_env()
    if getattr(args, "workers", None) is not None:
        opts = dataclasses.replace(opts, workers=args.workers)
    return opts


def _inspect_cmd(args: argparse.Namespace) -> int:
    step(f"inspecting {args.file.name}")
    rep = get_reporter()
    try:
        model = load(args.file, _options(args))
    except LoadError as e:
        rep.flush()
        rep.error(f"{args.file.name}: {e}")
        return 1
    rep.flush()
    summary = model.summary()
    if args.json:
        if model.meshes:
            summary["mesh_details"] = [
                {
                    "primitives": len(m.primitives),
                    "vertices": m.vertex_count,
                    "name": m.meta.name if m.meta is not None else None,
                }
                for m in model.meshes
            ]
        print(json.dumps(summary, indent=2, sort_keys=True))
    else:
        with section(f"Model {args.file.name}"):
            for key, value in summary.items():
                print(f"{key:>12}: {value}")
    return 0


def _validate_cmd(args: argparse.Namespace) -> int:
    rep = get_reporter()
    try:
        load(args.file, _options(args))
    except LoadError as e:
        rep.flush()
        rep.error(f"{args.file.name}: {e.code}: {e.message}")
        print(json.dumps(e.to_dict(), sort_keys=True))
        return 1
    rep.flush()
    rep.status(f"{args.file.name}: ok")
    return 0


def _add_load_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("file", type=Path, help=".gltf or .glb asset")
    p.add_argument(
        "--config",
        type=Path,
        help="YAML/JSON file with load options",
    )
    p.add_argument(
        "--workers",
        type=int,
        help="Decode meshes/materials/animations on N threads",
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="gltfmodel", description="glTF 2.0 model loader"
    )
    p.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (repeatable)",
    )
    p.add_argument(
        "-r",
        "--reporter",
        choices=["plain", "rich", "silent"],
        default="plain",
        help="Select reporter backend: plain (default), rich, silent",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    i = sub.add_parser("inspect", help="Load an asset and print a summary")
    _add_load_args(i)
    i.add_argument("--json", action="store_true", help="Emit JSON summary")
    i.add_argument(
        "--names", action="store_true", help="Keep entity names"
    )
    i.add_argument(
        "--extras", action="store_true", help="Keep entity extras"
    )
    i.add_argument(
        "--no-materials",
        dest="no_materials",
        action="store_true",
        help="Skip material, texture and image translation",
    )
    i.set_defaults(func=_inspect_cmd)

    v = sub.add_parser("validate", help="Check that an asset loads")
    _add_load_args(v)
    v.set_defaults(func=_validate_cmd)

    return p


def main(argv: list[str] | None = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    parser = build_parser()
    args = parser.parse_args(argv)
    requested = args.reporter
    if requested == "silent":
        set_reporter(SilentReporter())
    elif requested == "rich" and sys.stderr.isatty():
        set_reporter(RichReporter())
    else:
        # rich falls back to plain when stderr is not a terminal
        set_reporter(PlainReporter())
    set_verbosity(args.verbose)
    configure_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
