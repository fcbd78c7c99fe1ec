# ===-----------------------------------------------------------------------===#
# Distributed under the 3-Clause BSD License. See accompanying file LICENSE or
# copy at https://opensource.org/licenses/BSD-3-Clause.
# SPDX-License-Identifier: BSD-3-Clause
# ===-----------------------------------------------------------------------===#

"""Load options and their JSON/YAML configuration files."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

__all__ = ["LoadOptions", "load_options", "WORKERS_ENV"]

WORKERS_ENV = "GLTFMODEL_WORKERS"


@dataclass(slots=True, frozen=True)
class LoadOptions:
    # Capability flags: keep human readable names / arbitrary extras on
    # translated entities. Both off by default to keep the model small.
    names: bool = False
    extras: bool = False
    # When off no material, texture, sampler or image is translated.
    load_materials: bool = True
    generate_normals: bool = True
    generate_tangents: bool = True
    # 1 decodes on the calling thread; more dispatches meshes, materials
    # and animations to a thread pool.
    workers: int = 1

    def __post_init__(self) -> None:
        if self.workers < 1:
            raise ValueError(f"workers must be >= 1 (got {self.workers})")

    @property
    def keeps_meta(self) -> bool:
        return self.names or self.extras

    def from_env(self) -> "LoadOptions":
        raw = os.getenv(WORKERS_ENV)
        if not raw:
            return self
        try:
            workers = int(raw)
        except ValueError as e:
            raise ValueError(f"{WORKERS_ENV} must be an integer: {raw!r}") from e
        return replace(self, workers=workers)


def load_options(path: str | Path) -> LoadOptions:
    """Read LoadOptions from a ``.json``, ``.yaml`` or ``.yml`` file."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(p)
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in {".yaml", ".yml"}:
        data: Any = yaml.safe_load(text)
    else:
        data = json.loads(text)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("Root of options file must be a mapping")
    known = {f.name for f in fields(LoadOptions)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown option(s): {', '.join(unknown)}")
    for key, value in data.items():
        expected = int if key == "workers" else bool
        if not isinstance(value, expected) or (
            expected is int and isinstance(value, bool)
        ):
            raise ValueError(
                f"Option '{key}' must be {expected.__name__}, got {value!r}"
            )
    return LoadOptions(**data)
