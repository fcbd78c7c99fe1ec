# ===-----------------------------------------------------------------------===#
# Distributed under the 3-Clause BSD License. See accompanying file LICENSE or
# copy at https://opensource.org/licenses/BSD-3-Clause.
# SPDX-License-Identifier: BSD-3-Clause
# ===-----------------------------------------------------------------------===#

"""Mesh and primitive assembly from decoded accessors."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from .accessor import SEMANTIC_INDICES, decode_semantic
from .descriptors import AccessorDescriptor
from .errors import (
    E_ATTRIBUTE_LENGTH_MISMATCH,
    E_BAD_MODE,
    E_INDEX_OUT_OF_RANGE,
    E_MISSING_ATTRIBUTE,
    decode_error,
    reference_error,
    structure_error,
)
from .logging import get_logger
from .meta import Meta, make_meta

__all__ = [
    "Mode",
    "Primitive",
    "Mesh",
    "MeshBuilder",
    "compute_vertex_normals",
    "compute_tangents",
]


class Mode(IntEnum):
    POINTS = 0
    LINES = 1
    LINE_LOOP = 2
    LINE_STRIP = 3
    TRIANGLES = 4
    TRIANGLE_STRIP = 5
    TRIANGLE_FAN = 6

    @property
    def is_triangles(self) -> bool:
        return self >= Mode.TRIANGLES

    @property
    def is_lines(self) -> bool:
        return Mode.LINES <= self <= Mode.LINE_STRIP


def triangle_list(indices: np.ndarray, mode: Mode) -> np.ndarray:
    """Expand triangle list/strip/fan indices into an ``(n, 3)`` array."""
    idx = indices.reshape(-1)
    if mode is Mode.TRIANGLES:
        n = idx.size // 3
        return idx[: n * 3].reshape(n, 3)
    if idx.size < 3:
        return np.zeros((0, 3), dtype=idx.dtype)
    if mode is Mode.TRIANGLE_STRIP:
        i = np.arange(idx.size - 2)
        odd = i % 2
        # Odd triangles swap their last two vertices to keep the winding.
        return np.stack(
            [idx[i], idx[i + 1 + odd], idx[i + 2 - odd]], axis=1
        )
    if mode is Mode.TRIANGLE_FAN:
        i = np.arange(1, idx.size - 1)
        return np.stack([np.full(i.size, idx[0]), idx[i], idx[i + 1]], axis=1)
    raise decode_error(E_BAD_MODE, f"{mode.name} is not a triangle mode")


def compute_vertex_normals(
    positions: np.ndarray, triangles: np.ndarray
) -> np.ndarray:
    """Per-vertex normals: average of the unit normals of adjacent faces.

    Vertices touching no (non-degenerate) face get ``(0, 0, 1)``.
    """
    vcount = int(positions.shape[0])
    normals = np.zeros((vcount, 3), dtype=np.float32)
    if vcount == 0:
        return normals
    tri = triangles.astype(np.intp, copy=False)
    if tri.size:
        p0 = positions[tri[:, 0]]
        p1 = positions[tri[:, 1]]
        p2 = positions[tri[:, 2]]
        face_n = np.cross(p1 - p0, p2 - p0).astype(np.float64)
        lens = np.linalg.norm(face_n, axis=1)
        good = lens > 1e-20
        face_n[good] /= lens[good][:, None]
        face_n[~good] = 0.0
        acc = np.zeros((vcount, 3), dtype=np.float64)
        for k in range(3):
            np.add.at(acc, tri[:, k], face_n)
        normals = acc.astype(np.float32)
    lens = np.linalg.norm(normals, axis=1)
    good = lens > 1e-12
    normals[good] /= lens[good][:, None]
    normals[~good] = (0.0, 0.0, 1.0)
    return normals


def _any_perpendicular(n: np.ndarray) -> np.ndarray:
    # Cross with the world axis least aligned with each normal.
    axis = np.zeros_like(n)
    axis[np.arange(n.shape[0]), np.argmin(np.abs(n), axis=1)] = 1.0
    t = np.cross(axis, n)
    return t / np.linalg.norm(t, axis=1, keepdims=True)


def compute_tangents(
    positions: np.ndarray,
    normals: np.ndarray,
    uvs: np.ndarray,
    triangles: np.ndarray,
) -> np.ndarray:
    """Per-vertex ``(x, y, z, w)`` tangents from triangle edge/UV deltas.

    Tangents are Gram-Schmidt orthogonalized against the normal, ``w`` holds
    the bitangent handedness (+1 or -1).
    """
    vcount = int(positions.shape[0])
    tan = np.zeros((vcount, 3), dtype=np.float64)
    bit = np.zeros((vcount, 3), dtype=np.float64)
    tri = triangles.astype(np.intp, copy=False)
    if tri.size:
        p = positions.astype(np.float64)
        t = uvs.astype(np.float64)
        e1 = p[tri[:, 1]] - p[tri[:, 0]]
        e2 = p[tri[:, 2]] - p[tri[:, 0]]
        d1 = t[tri[:, 1]] - t[tri[:, 0]]
        d2 = t[tri[:, 2]] - t[tri[:, 0]]
        det = d1[:, 0] * d2[:, 1] - d2[:, 0] * d1[:, 1]
        ok = np.abs(det) > 1e-20
        r = np.zeros_like(det)
        r[ok] = 1.0 / det[ok]
        sdir = (e1 * d2[:, 1:2] - e2 * d1[:, 1:2]) * r[:, None]
        tdir = (e2 * d1[:, 0:1] - e1 * d2[:, 0:1]) * r[:, None]
        for k in range(3):
            np.add.at(tan, tri[:, k], sdir)
            np.add.at(bit, tri[:, k], tdir)
    n = normals.astype(np.float64)
    ortho = tan - n * np.sum(n * tan, axis=1, keepdims=True)
    lens = np.linalg.norm(ortho, axis=1)
    good = lens > 1e-12
    out = np.zeros((vcount, 4), dtype=np.float32)
    if np.any(good):
        out[good, :3] = ortho[good] / lens[good][:, None]
    if np.any(~good):
        out[~good, :3] = _any_perpendicular(n[~good])
    handed = np.sum(np.cross(n, tan) * bit, axis=1)
    out[:, 3] = np.where(handed < 0.0, -1.0, 1.0)
    return out


@dataclass(slots=True)
class Primitive:
    mode: Mode
    # Always present; sequential when the source has no index accessor.
    indices: np.ndarray
    attributes: Dict[str, np.ndarray] = field(default_factory=dict)
    material: Optional[int] = None
    generated: frozenset = frozenset()
    meta: Optional[Meta] = None

    @property
    def vertex_count(self) -> int:
        return int(self.attributes["POSITION"].shape[0])

    @property
    def positions(self) -> np.ndarray:
        return self.attributes["POSITION"]

    @property
    def normals(self) -> Optional[np.ndarray]:
        return self.attributes.get("NORMAL")

    @property
    def tangents(self) -> Optional[np.ndarray]:
        return self.attributes.get("TANGENT")

    @property
    def has_normals(self) -> bool:
        return "NORMAL" in self.attributes

    @property
    def has_tangents(self) -> bool:
        return "TANGENT" in self.attributes

    @property
    def has_tex_coords(self) -> bool:
        return "TEXCOORD_0" in self.attributes

    @property
    def has_joints(self) -> bool:
        return "JOINTS_0" in self.attributes

    @property
    def has_weights(self) -> bool:
        return "WEIGHTS_0" in self.attributes

    def bounds(self) -> tuple[np.ndarray, np.ndarray]:
        pos = self.positions
        if pos.shape[0] == 0:
            zero = np.zeros(3, dtype=np.float32)
            return zero, zero.copy()
        return pos.min(axis=0), pos.max(axis=0)

    def triangles(self) -> np.ndarray:
        """Vertex index triples for triangle topologies."""
        if not self.mode.is_triangles:
            raise decode_error(
                E_BAD_MODE, f"{self.mode.name} primitive has no triangles"
            )
        return triangle_list(self.indices, self.mode)

    def lines(self) -> np.ndarray:
        """Vertex index pairs for line topologies."""
        if not self.mode.is_lines:
            raise decode_error(
                E_BAD_MODE, f"{self.mode.name} primitive has no lines"
            )
        idx = self.indices
        if self.mode is Mode.LINES:
            n = idx.size // 2
            return idx[: n * 2].reshape(n, 2)
        if idx.size < 2:
            return np.zeros((0, 2), dtype=idx.dtype)
        pairs = np.stack([idx[:-1], idx[1:]], axis=1)
        if self.mode is Mode.LINE_LOOP:
            pairs = np.vstack([pairs, [[idx[-1], idx[0]]]])
        return pairs.astype(idx.dtype, copy=False)

    def points(self) -> np.ndarray:
        if self.mode is not Mode.POINTS:
            raise decode_error(
                E_BAD_MODE, f"{self.mode.name} primitive is not a point list"
            )
        return self.indices


@dataclass(slots=True)
class Mesh:
    primitives: List[Primitive] = field(default_factory=list)
    weights: Optional[List[float]] = None
    meta: Optional[Meta] = None

    @property
    def vertex_count(self) -> int:
        return sum(p.vertex_count for p in self.primitives)


class MeshBuilder:
    """Builds :class:`Mesh` records for one resolved document.

    ``needs_tangents(material_index)`` tells whether a material samples a
    normal map, which is when missing tangents get synthesized.
    """

    def __init__(
        self,
        accessors: Sequence[AccessorDescriptor],
        buffers: Sequence[bytes],
        *,
        material_count: int = 0,
        needs_tangents: Callable[[Optional[int]], bool] = lambda m: False,
        generate_normals: bool = True,
        generate_tangents: bool = True,
        names: bool = False,
        extras: bool = False,
    ) -> None:
        self.accessors = accessors
        self.buffers = buffers
        self.material_count = material_count
        self.needs_tangents = needs_tangents
        self.generate_normals = generate_normals
        self.generate_tangents = generate_tangents
        self.names = names
        self.extras = extras

    def _decode(self, semantic: str, accessor_index: int, **ctx) -> np.ndarray:
        if not 0 <= accessor_index < len(self.accessors):
            raise reference_error(
                f"accessor {accessor_index} does not exist",
                accessor=accessor_index,
                semantic=semantic,
                **ctx,
            )
        return decode_semantic(
            semantic, self.accessors[accessor_index], self.buffers
        )

    def build_primitive(
        self, prim, mesh_index: int, prim_index: int
    ) -> Primitive:
        ctx = {"mesh": mesh_index, "primitive": prim_index}
        if prim.material is not None and not (
            0 <= prim.material < self.material_count
        ):
            raise reference_error(
                f"material {prim.material} does not exist",
                material=prim.material,
                **ctx,
            )
        try:
            mode = Mode(prim.mode if prim.mode is not None else Mode.TRIANGLES)
        except ValueError:
            raise decode_error(
                E_BAD_MODE, f"Unknown primitive mode {prim.mode!r}", **ctx
            ) from None
        semantics = _attribute_map(prim.attributes)
        if "POSITION" not in semantics:
            raise structure_error(
                E_MISSING_ATTRIBUTE, "Primitive has no POSITION", **ctx
            )
        attributes = {
            name: self._decode(name, acc, **ctx)
            for name, acc in semantics.items()
        }
        lengths = {name: int(a.shape[0]) for name, a in attributes.items()}
        vcount = lengths["POSITION"]
        if any(n != vcount for n in lengths.values()):
            raise structure_error(
                E_ATTRIBUTE_LENGTH_MISMATCH,
                f"Attribute lengths differ: {lengths}",
                lengths=lengths,
                **ctx,
            )
        if prim.indices is not None:
            indices = self._decode(SEMANTIC_INDICES, prim.indices, **ctx)
            if indices.size and int(indices.max()) >= vcount:
                raise decode_error(
                    E_INDEX_OUT_OF_RANGE,
                    f"Index {int(indices.max())} >= vertex count {vcount}",
                    vertex_count=vcount,
                    **ctx,
                )
        else:
            indices = np.arange(vcount, dtype=np.uint32)
        generated = set()
        if mode.is_triangles:
            tris = triangle_list(indices, mode)
            if "NORMAL" not in attributes and self.generate_normals:
                attributes["NORMAL"] = compute_vertex_normals(
                    attributes["POSITION"], tris
                )
                generated.add("NORMAL")
            if (
                "TANGENT" not in attributes
                and self.generate_tangents
                and "NORMAL" in attributes
                and "TEXCOORD_0" in attributes
                and self.needs_tangents(prim.material)
            ):
                attributes["TANGENT"] = compute_tangents(
                    attributes["POSITION"],
                    attributes["NORMAL"],
                    attributes["TEXCOORD_0"],
                    tris,
                )
                generated.add("TANGENT")
        if generated:
            get_logger().debug(
                "mesh %d primitive %d: generated %s",
                mesh_index,
                prim_index,
                ", ".join(sorted(generated)),
            )
        return Primitive(
            mode=mode,
            indices=indices,
            attributes=attributes,
            material=prim.material,
            generated=frozenset(generated),
            meta=make_meta(prim, names=False, extras=self.extras),
        )

    def build(self, gltf_mesh, mesh_index: int) -> Mesh:
        primitives = [
            self.build_primitive(p, mesh_index, i)
            for i, p in enumerate(gltf_mesh.primitives or [])
        ]
        return Mesh(
            primitives=primitives,
            weights=list(gltf_mesh.weights) if gltf_mesh.weights else None,
            meta=make_meta(gltf_mesh, names=self.names, extras=self.extras),
        )


def _attribute_map(attributes) -> Dict[str, int]:
    """Semantic -> accessor index for every attribute the primitive sets."""
    if attributes is None:
        return {}
    raw = attributes if isinstance(attributes, dict) else vars(attributes)
    return {
        name: int(acc)
        for name, acc in raw.items()
        if isinstance(acc, int) and not isinstance(acc, bool) and name.isupper()
    }
