# ===-----------------------------------------------------------------------===#
# Distributed under the 3-Clause BSD License. See accompanying file LICENSE or
# copy at https://opensource.org/licenses/BSD-3-Clause.
# SPDX-License-Identifier: BSD-3-Clause
# ===-----------------------------------------------------------------------===#

"""Error definitions for gltfmodel.

Every failure raised while loading an asset is a :class:`LoadError`. The
subclass names the family (resolution, decode, structure, reference) and
``code`` names the precise kind. ``context`` identifies the offending entity
(``{"accessor": 3}``, ``{"mesh": 0, "primitive": 1}``...).
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional

# IO / resolution
E_MISSING_FILE = "E_MISSING_FILE"
E_INVALID_ENCODING = "E_INVALID_ENCODING"
E_MALFORMED_CONTAINER = "E_MALFORMED_CONTAINER"
# Decode
E_ACCESSOR_OUT_OF_BOUNDS = "E_ACCESSOR_OUT_OF_BOUNDS"
E_UNSUPPORTED_COMPONENT_TYPE = "E_UNSUPPORTED_COMPONENT_TYPE"
E_INDEX_OUT_OF_RANGE = "E_INDEX_OUT_OF_RANGE"
E_BAD_MODE = "E_BAD_MODE"
# Structure
E_ATTRIBUTE_LENGTH_MISMATCH = "E_ATTRIBUTE_LENGTH_MISMATCH"
E_MISSING_ATTRIBUTE = "E_MISSING_ATTRIBUTE"
E_CYCLIC_HIERARCHY = "E_CYCLIC_HIERARCHY"
E_MULTIPLE_PARENTS = "E_MULTIPLE_PARENTS"
E_UNSUPPORTED_TRANSFORM = "E_UNSUPPORTED_TRANSFORM"
E_SKIN_JOINT_COUNT_MISMATCH = "E_SKIN_JOINT_COUNT_MISMATCH"
E_NON_MONOTONIC_KEYFRAMES = "E_NON_MONOTONIC_KEYFRAMES"
E_INTERPOLATION_DATA_MISMATCH = "E_INTERPOLATION_DATA_MISMATCH"
E_DUPLICATE_CHANNEL = "E_DUPLICATE_CHANNEL"
# Reference
E_TEXTURE_INDEX_OUT_OF_RANGE = "E_TEXTURE_INDEX_OUT_OF_RANGE"
E_INVALID_REFERENCE = "E_INVALID_REFERENCE"


@dataclass
class LoadError(Exception):
    code: str
    message: str
    context: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.code}: {self.message}" + (
            f" | ctx={self.context}" if self.context else ""
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "context": self.context or {},
        }


class ResolutionError(LoadError):
    pass


class DecodeError(LoadError):
    pass


class StructureError(LoadError):
    pass


class InvalidReferenceError(LoadError):
    pass


def resolution_error(
    code: str, message: str, **context: Any
) -> ResolutionError:
    return ResolutionError(code=code, message=message, context=context or None)


def decode_error(code: str, message: str, **context: Any) -> DecodeError:
    return DecodeError(code=code, message=message, context=context or None)


def structure_error(code: str, message: str, **context: Any) -> StructureError:
    return StructureError(code=code, message=message, context=context or None)


def reference_error(
    message: str, *, code: str = E_INVALID_REFERENCE, **context: Any
) -> InvalidReferenceError:
    return InvalidReferenceError(
        code=code, message=message, context=context or None
    )


__all__ = [
    "LoadError",
    "ResolutionError",
    "DecodeError",
    "StructureError",
    "InvalidReferenceError",
    "resolution_error",
    "decode_error",
    "structure_error",
    "reference_error",
    "E_MISSING_FILE",
    "E_INVALID_ENCODING",
    "E_MALFORMED_CONTAINER",
    "E_ACCESSOR_OUT_OF_BOUNDS",
    "E_UNSUPPORTED_COMPONENT_TYPE",
    "E_INDEX_OUT_OF_RANGE",
    "E_BAD_MODE",
    "E_ATTRIBUTE_LENGTH_MISMATCH",
    "E_MISSING_ATTRIBUTE",
    "E_CYCLIC_HIERARCHY",
    "E_MULTIPLE_PARENTS",
    "E_UNSUPPORTED_TRANSFORM",
    "E_SKIN_JOINT_COUNT_MISMATCH",
    "E_NON_MONOTONIC_KEYFRAMES",
    "E_INTERPOLATION_DATA_MISMATCH",
    "E_DUPLICATE_CHANNEL",
    "E_TEXTURE_INDEX_OUT_OF_RANGE",
    "E_INVALID_REFERENCE",
]
