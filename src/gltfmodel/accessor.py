# ===-----------------------------------------------------------------------===#
# Distributed under the 3-Clause BSD License. See accompanying file LICENSE or
# copy at https://opensource.org/licenses/BSD-3-Clause.
# SPDX-License-Identifier: BSD-3-Clause
# ===-----------------------------------------------------------------------===#

"""Accessor decoding.

Turns an :class:`AccessorDescriptor` plus the resolved buffers into a numpy
array of shape ``(count, arity)`` (``(count, 4, 4)`` style for matrices,
column-major as stored).

Important: must respect bufferView.byteStride (interleaved attributes),
matrix column alignment, accessor.normalized and sparse overrides.
"""

from __future__ import annotations

import re
from typing import Dict, FrozenSet, Sequence, Tuple

import numpy as np

from .descriptors import (
    AccessorDescriptor,
    BufferRange,
    ComponentType,
    ElementType,
    column_stride,
    element_size,
)
from .errors import (
    E_ACCESSOR_OUT_OF_BOUNDS,
    E_INDEX_OUT_OF_RANGE,
    E_UNSUPPORTED_COMPONENT_TYPE,
    decode_error,
    reference_error,
)

__all__ = [
    "decode_accessor",
    "decode_semantic",
    "accepted_types",
    "SEMANTIC_INDICES",
    "SEMANTIC_ANIMATION_INPUT",
    "SEMANTIC_INVERSE_BIND",
]

SEMANTIC_INDICES = "indices"
SEMANTIC_ANIMATION_INPUT = "animation.input"
SEMANTIC_INVERSE_BIND = "skin.inverseBindMatrices"

_C = ComponentType
_E = ElementType
_FLOAT = frozenset({_C.FLOAT32})
_FLOAT_OR_UNORM = frozenset({_C.FLOAT32, _C.UINT8, _C.UINT16})
_FLOAT_OR_NORM = frozenset(
    {_C.FLOAT32, _C.INT8, _C.UINT8, _C.INT16, _C.UINT16}
)
_UNSIGNED = frozenset({_C.UINT8, _C.UINT16, _C.UINT32})

# semantic -> (component types, element types, output dtype)
_Rule = Tuple[FrozenSet[ComponentType], FrozenSet[ElementType], str]
_RULES: Dict[str, _Rule] = {
    "POSITION": (_FLOAT_OR_NORM, frozenset({_E.VEC3}), "f4"),
    "NORMAL": (_FLOAT_OR_NORM, frozenset({_E.VEC3}), "f4"),
    "TANGENT": (_FLOAT_OR_NORM, frozenset({_E.VEC4}), "f4"),
    "TEXCOORD": (_FLOAT_OR_NORM, frozenset({_E.VEC2}), "f4"),
    "COLOR": (_FLOAT_OR_UNORM, frozenset({_E.VEC3, _E.VEC4}), "f4"),
    "JOINTS": (frozenset({_C.UINT8, _C.UINT16}), frozenset({_E.VEC4}), "u2"),
    "WEIGHTS": (_FLOAT_OR_UNORM, frozenset({_E.VEC4}), "f4"),
    SEMANTIC_INDICES: (_UNSIGNED, frozenset({_E.SCALAR}), "u4"),
    SEMANTIC_ANIMATION_INPUT: (_FLOAT, frozenset({_E.SCALAR}), "f4"),
    SEMANTIC_INVERSE_BIND: (_FLOAT, frozenset({_E.MAT4}), "f4"),
    "translation": (_FLOAT, frozenset({_E.VEC3}), "f4"),
    "scale": (_FLOAT, frozenset({_E.VEC3}), "f4"),
    "rotation": (_FLOAT_OR_NORM, frozenset({_E.VEC4}), "f4"),
    "weights": (_FLOAT_OR_NORM, frozenset({_E.SCALAR}), "f4"),
}

_SET_SUFFIX = re.compile(r"^(TEXCOORD|COLOR|JOINTS|WEIGHTS)_\d+$")


# Integer data read as-is; a normalized accessor would lose its values.
_NEVER_NORMALIZED = frozenset({"JOINTS", SEMANTIC_INDICES})
# Integer components are only valid here as normalized fixed point.
_ALWAYS_NORMALIZED = frozenset({"COLOR", "WEIGHTS", "rotation", "weights"})


def _rule_key(semantic: str) -> str:
    m = _SET_SUFFIX.match(semantic)
    return m.group(1) if m else semantic


def accepted_types(semantic: str) -> _Rule | None:
    """Rule for a semantic; custom (``_FOO``) attributes have none."""
    return _RULES.get(_rule_key(semantic))


def _buffer_for(
    buffers: Sequence[bytes], rng: BufferRange, accessor_index: int
) -> bytes:
    if not 0 <= rng.buffer < len(buffers):
        raise reference_error(
            f"buffer {rng.buffer} does not exist", accessor=accessor_index
        )
    return buffers[rng.buffer]


def _read_strided(
    buffer: bytes,
    rng: BufferRange,
    byte_offset: int,
    component: ComponentType,
    element: ElementType,
    count: int,
    stride: int | None,
    *,
    accessor_index: int,
) -> np.ndarray:
    """Copy ``count`` elements out of ``buffer`` as ``(count, arity)``."""
    arity = element.arity
    if count == 0:
        return np.zeros((0, arity), dtype=component.dtype)
    esize = element_size(component, element)
    stride = stride or esize
    start = rng.offset + byte_offset
    needed = byte_offset + (count - 1) * stride + esize
    view_end = rng.offset + rng.length
    if (
        rng.offset < 0
        or byte_offset < 0
        or needed > rng.length
        or view_end > len(buffer)
    ):
        raise decode_error(
            E_ACCESSOR_OUT_OF_BOUNDS,
            f"Accessor needs {needed} bytes of a {rng.length} byte view"
            f" at buffer offset {rng.offset} (buffer is {len(buffer)} bytes)",
            accessor=accessor_index,
            buffer=rng.buffer,
        )
    dtype = component.dtype
    if element.is_matrix:
        cols = element.columns
        rows = arity // cols
        view = np.ndarray(
            shape=(count, cols, rows),
            dtype=dtype,
            buffer=buffer,
            offset=start,
            strides=(stride, column_stride(component, element), dtype.itemsize),
        )
    else:
        view = np.ndarray(
            shape=(count, arity),
            dtype=dtype,
            buffer=buffer,
            offset=start,
            strides=(stride, dtype.itemsize),
        )
    return np.array(view, copy=True).reshape(count, arity)


def _normalize(raw: np.ndarray, component: ComponentType) -> np.ndarray:
    out = raw.astype(np.float32) / np.float32(component.norm_divisor)
    if component.is_signed:
        np.maximum(out, -1.0, out=out)
    return out


def decode_accessor(
    desc: AccessorDescriptor, buffers: Sequence[bytes]
) -> np.ndarray:
    """Decode an accessor to a ``(count, arity)`` array.

    Normalized integer accessors come back as float32; other accessors keep
    their component dtype. Sparse overrides are applied after the dense pass.
    """
    comp = desc.component
    if desc.normalized and comp is ComponentType.UINT32:
        raise decode_error(
            E_UNSUPPORTED_COMPONENT_TYPE,
            "Normalized uint32 accessors are not allowed",
            accessor=desc.index,
        )
    if desc.view is None:
        out = np.zeros((desc.count, desc.element.arity), dtype=comp.dtype)
    else:
        out = _read_strided(
            _buffer_for(buffers, desc.view, desc.index),
            desc.view,
            desc.byte_offset,
            comp,
            desc.element,
            desc.count,
            desc.view.stride,
            accessor_index=desc.index,
        )
    if desc.sparse is not None:
        sp = desc.sparse
        if sp.indices_component not in _UNSIGNED:
            raise decode_error(
                E_UNSUPPORTED_COMPONENT_TYPE,
                f"Sparse indices must be unsigned, got {sp.indices_component.name}",
                accessor=desc.index,
            )
        idx = _read_strided(
            _buffer_for(buffers, sp.indices_range, desc.index),
            sp.indices_range,
            0,
            sp.indices_component,
            ElementType.SCALAR,
            sp.count,
            None,
            accessor_index=desc.index,
        ).reshape(-1)
        values = _read_strided(
            _buffer_for(buffers, sp.values_range, desc.index),
            sp.values_range,
            0,
            comp,
            desc.element,
            sp.count,
            None,
            accessor_index=desc.index,
        )
        if idx.size and int(idx.max()) >= desc.count:
            raise decode_error(
                E_INDEX_OUT_OF_RANGE,
                f"Sparse index {int(idx.max())} >= count {desc.count}",
                accessor=desc.index,
            )
        out[idx.astype(np.intp)] = values
    if desc.normalized and not comp.is_float:
        out = _normalize(out, comp)
    return out


def decode_semantic(
    semantic: str,
    desc: AccessorDescriptor,
    buffers: Sequence[bytes],
) -> np.ndarray:
    """Decode an accessor for a known consumer and coerce its dtype.

    Raises ``E_UNSUPPORTED_COMPONENT_TYPE`` when the accessor's component or
    element type is not acceptable for ``semantic`` (e.g. float JOINTS), when
    integer ids (JOINTS, indices) are marked normalized, or when integer
    colors, weights or rotations are not.
    Index arrays are flattened to 1-D ``uint32``.
    """
    rule = accepted_types(semantic)
    if rule is None:
        return decode_accessor(desc, buffers)
    components, elements, out_dtype = rule
    if desc.component not in components or desc.element not in elements:
        raise decode_error(
            E_UNSUPPORTED_COMPONENT_TYPE,
            f"{semantic} does not accept {desc.component.name}/"
            f"{desc.element.value}",
            accessor=desc.index,
            semantic=semantic,
        )
    key = _rule_key(semantic)
    if desc.normalized and key in _NEVER_NORMALIZED:
        raise decode_error(
            E_UNSUPPORTED_COMPONENT_TYPE,
            f"{semantic} does not accept normalized {desc.component.name}",
            accessor=desc.index,
            semantic=semantic,
        )
    if (
        not desc.normalized
        and desc.component is not ComponentType.FLOAT32
        and key in _ALWAYS_NORMALIZED
    ):
        raise decode_error(
            E_UNSUPPORTED_COMPONENT_TYPE,
            f"{semantic} requires {desc.component.name} to be normalized",
            accessor=desc.index,
            semantic=semantic,
        )
    data = decode_accessor(desc, buffers)
    if out_dtype == "f4":
        data = data.astype(np.float32, copy=False)
    else:
        data = data.astype(np.dtype(out_dtype), copy=False)
    if semantic == SEMANTIC_INDICES or semantic == SEMANTIC_ANIMATION_INPUT:
        data = data.reshape(-1)
    elif semantic == SEMANTIC_INVERSE_BIND:
        data = data.reshape(-1, 4, 4)
    return data
