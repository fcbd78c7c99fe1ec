# ===-----------------------------------------------------------------------===#
# Distributed under the 3-Clause BSD License. See accompanying file LICENSE or
# copy at https://opensource.org/licenses/BSD-3-Clause.
# SPDX-License-Identifier: BSD-3-Clause
# ===-----------------------------------------------------------------------===#

"""Optional name/extras payload attached to translated entities."""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Optional

__all__ = ["Meta", "make_meta"]


@dataclass(frozen=True, slots=True)
class Meta:
    name: Optional[str] = None
    extras: Any = None


def make_meta(source: Any, *, names: bool, extras: bool) -> Optional[Meta]:
    """Payload for ``source`` or None when neither capability is enabled."""
    if not (names or extras):
        return None
    name = getattr(source, "name", None) if names else None
    raw = getattr(source, "extras", None) if extras else None
    # pygltflib defaults extras to {}; keep "no extras" as None.
    return Meta(name=name, extras=copy.deepcopy(raw) if raw else None)
