# ===-----------------------------------------------------------------------===#
# Distributed under the 3-Clause BSD License. See accompanying file LICENSE or
# copy at https://opensource.org/licenses/BSD-3-Clause.
# SPDX-License-Identifier: BSD-3-Clause
# ===-----------------------------------------------------------------------===#

"""Validated accessor descriptors.

pygltflib accessors are loosely typed (plain ints and strings, optional
everything). They are converted once, when the document is resolved, into
the frozen variants below; the decoder only ever sees these.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

import numpy as np
from pygltflib import GLTF2

from .errors import (
    E_UNSUPPORTED_COMPONENT_TYPE,
    decode_error,
    reference_error,
)

__all__ = [
    "ComponentType",
    "ElementType",
    "BufferRange",
    "SparseDescriptor",
    "AccessorDescriptor",
    "column_stride",
    "element_size",
    "describe_accessor",
    "describe_accessors",
]


class ComponentType(Enum):
    INT8 = 5120
    UINT8 = 5121
    INT16 = 5122
    UINT16 = 5123
    UINT32 = 5125
    FLOAT32 = 5126

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(_DTYPES[self])

    @property
    def size(self) -> int:
        return self.dtype.itemsize

    @property
    def is_float(self) -> bool:
        return self is ComponentType.FLOAT32

    @property
    def is_signed(self) -> bool:
        return self in (ComponentType.INT8, ComponentType.INT16)

    @property
    def norm_divisor(self) -> float:
        return float(np.iinfo(self.dtype).max)


_DTYPES = {
    ComponentType.INT8: "<i1",
    ComponentType.UINT8: "<u1",
    ComponentType.INT16: "<i2",
    ComponentType.UINT16: "<u2",
    ComponentType.UINT32: "<u4",
    ComponentType.FLOAT32: "<f4",
}


class ElementType(Enum):
    SCALAR = "SCALAR"
    VEC2 = "VEC2"
    VEC3 = "VEC3"
    VEC4 = "VEC4"
    MAT2 = "MAT2"
    MAT3 = "MAT3"
    MAT4 = "MAT4"

    @property
    def arity(self) -> int:
        return _ARITY[self]

    @property
    def columns(self) -> int:
        """Column count for matrices, 1 for scalars and vectors."""
        return {"MAT2": 2, "MAT3": 3, "MAT4": 4}.get(self.value, 1)

    @property
    def is_matrix(self) -> bool:
        return self.columns > 1


_ARITY = {
    ElementType.SCALAR: 1,
    ElementType.VEC2: 2,
    ElementType.VEC3: 3,
    ElementType.VEC4: 4,
    ElementType.MAT2: 4,
    ElementType.MAT3: 9,
    ElementType.MAT4: 16,
}


def column_stride(component: ComponentType, element: ElementType) -> int:
    """Byte distance between matrix columns (columns start 4-byte aligned)."""
    rows = element.arity // element.columns
    raw = rows * component.size
    if element.is_matrix:
        return (raw + 3) & ~3
    return raw


def element_size(component: ComponentType, element: ElementType) -> int:
    return element.columns * column_stride(component, element)


@dataclass(frozen=True, slots=True)
class BufferRange:
    """Absolute byte window of a buffer view inside its buffer."""

    buffer: int
    offset: int
    length: int
    stride: Optional[int] = None


@dataclass(frozen=True, slots=True)
class SparseDescriptor:
    count: int
    indices_range: BufferRange
    indices_component: ComponentType
    values_range: BufferRange


@dataclass(frozen=True, slots=True)
class AccessorDescriptor:
    index: int
    component: ComponentType
    element: ElementType
    count: int
    normalized: bool = False
    # None for accessors without a buffer view (zero filled).
    view: Optional[BufferRange] = None
    # Offset of the first element relative to the view start.
    byte_offset: int = 0
    sparse: Optional[SparseDescriptor] = None

    @property
    def element_size(self) -> int:
        return element_size(self.component, self.element)

    @property
    def stride(self) -> int:
        if self.view is not None and self.view.stride:
            return self.view.stride
        return self.element_size


def _component(code, accessor_index: int) -> ComponentType:
    try:
        return ComponentType(code)
    except ValueError:
        raise decode_error(
            E_UNSUPPORTED_COMPONENT_TYPE,
            f"Unknown component type {code!r}",
            accessor=accessor_index,
        ) from None


def _element(name, accessor_index: int) -> ElementType:
    try:
        return ElementType(name)
    except ValueError:
        raise decode_error(
            E_UNSUPPORTED_COMPONENT_TYPE,
            f"Unknown element type {name!r}",
            accessor=accessor_index,
        ) from None


def _view_range(
    gltf: GLTF2, view_index: int, extra_offset: int, accessor_index: int
) -> BufferRange:
    if view_index < 0 or view_index >= len(gltf.bufferViews):
        raise reference_error(
            f"bufferView {view_index} does not exist",
            accessor=accessor_index,
            buffer_view=view_index,
        )
    bv = gltf.bufferViews[view_index]
    if bv.buffer is None or not 0 <= bv.buffer < len(gltf.buffers):
        raise reference_error(
            f"buffer {bv.buffer} does not exist",
            accessor=accessor_index,
            buffer_view=view_index,
        )
    offset = int(bv.byteOffset or 0)
    length = int(bv.byteLength or 0)
    return BufferRange(
        buffer=int(bv.buffer),
        offset=offset + extra_offset,
        length=length - extra_offset,
        stride=int(bv.byteStride) if bv.byteStride else None,
    )


def describe_accessor(gltf: GLTF2, index: int) -> AccessorDescriptor:
    acc = gltf.accessors[index]
    component = _component(acc.componentType, index)
    element = _element(acc.type, index)
    view = None
    if acc.bufferView is not None:
        view = _view_range(gltf, acc.bufferView, 0, index)
    sparse = None
    raw_sparse = getattr(acc, "sparse", None)
    if raw_sparse is not None and int(raw_sparse.count or 0) > 0:
        indices, values = raw_sparse.indices, raw_sparse.values
        sparse = SparseDescriptor(
            count=int(raw_sparse.count),
            indices_range=_view_range(
                gltf, indices.bufferView, int(indices.byteOffset or 0), index
            ),
            indices_component=_component(indices.componentType, index),
            values_range=_view_range(
                gltf, values.bufferView, int(values.byteOffset or 0), index
            ),
        )
    return AccessorDescriptor(
        index=index,
        component=component,
        element=element,
        count=int(acc.count or 0),
        normalized=bool(acc.normalized),
        view=view,
        byte_offset=int(acc.byteOffset or 0),
        sparse=sparse,
    )


def describe_accessors(gltf: GLTF2) -> List[AccessorDescriptor]:
    return [describe_accessor(gltf, i) for i in range(len(gltf.accessors))]
