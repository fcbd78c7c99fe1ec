# ===-----------------------------------------------------------------------===#
# Distributed under the 3-Clause BSD License. See accompanying file LICENSE or
# copy at https://opensource.org/licenses/BSD-3-Clause.
# SPDX-License-Identifier: BSD-3-Clause
# ===-----------------------------------------------------------------------===#

"""Scene graph assembly: nodes, hierarchy checks, skins, cameras, scenes.

All nodes live in one list owned by the model; parent/child, mesh, skin,
camera and joint relations are plain indices into the model's lists.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Union

import numpy as np

from .accessor import SEMANTIC_INVERSE_BIND, decode_semantic
from .descriptors import AccessorDescriptor
from .errors import (
    E_CYCLIC_HIERARCHY,
    E_MULTIPLE_PARENTS,
    E_SKIN_JOINT_COUNT_MISMATCH,
    reference_error,
    structure_error,
)
from .logging import get_logger
from .meta import Meta, make_meta
from .transform import IDENTITY_ROTATION, Transform

__all__ = [
    "Node",
    "Skin",
    "ProjectionType",
    "Perspective",
    "Orthographic",
    "Camera",
    "Scene",
    "SceneAssembler",
    "check_hierarchy",
]


@dataclass(slots=True)
class Node:
    transform: Transform = field(default_factory=Transform)
    parent: Optional[int] = None
    children: List[int] = field(default_factory=list)
    mesh: Optional[int] = None
    skin: Optional[int] = None
    camera: Optional[int] = None
    # Morph target weights overriding the mesh defaults.
    weights: Optional[List[float]] = None
    meta: Optional[Meta] = None

    @property
    def is_root(self) -> bool:
        return self.parent is None


@dataclass(slots=True)
class Skin:
    joints: List[int]
    # (joint_count, 4, 4) row-major; identities when the source has none.
    inverse_bind_matrices: np.ndarray
    skeleton: Optional[int] = None
    meta: Optional[Meta] = None

    @property
    def joint_count(self) -> int:
        return len(self.joints)


class ProjectionType(Enum):
    PERSPECTIVE = "perspective"
    ORTHOGRAPHIC = "orthographic"


@dataclass(slots=True, frozen=True)
class Perspective:
    yfov: float
    znear: float
    # Infinite projection when the source has no far plane.
    zfar: float = math.inf
    aspect_ratio: Optional[float] = None


@dataclass(slots=True, frozen=True)
class Orthographic:
    xmag: float
    ymag: float
    znear: float
    zfar: float


@dataclass(slots=True)
class Camera:
    projection: Union[Perspective, Orthographic]
    meta: Optional[Meta] = None

    @property
    def type(self) -> ProjectionType:
        if isinstance(self.projection, Orthographic):
            return ProjectionType.ORTHOGRAPHIC
        return ProjectionType.PERSPECTIVE

    @property
    def znear(self) -> float:
        return self.projection.znear

    @property
    def zfar(self) -> float:
        return self.projection.zfar


@dataclass(slots=True)
class Scene:
    nodes: List[int] = field(default_factory=list)
    meta: Optional[Meta] = None


def check_hierarchy(nodes: Sequence[Node]) -> None:
    """Verify the child lists form a forest and fill in ``Node.parent``.

    Runs an iterative depth-first walk from every node so that it always
    terminates; revisiting a node on the current path raises
    ``E_CYCLIC_HIERARCHY``. A node listed as child of two parents raises
    ``E_MULTIPLE_PARENTS``.
    """
    white, grey, black = 0, 1, 2
    state = [white] * len(nodes)
    for root in range(len(nodes)):
        if state[root] != white:
            continue
        state[root] = grey
        stack = [(root, iter(nodes[root].children))]
        while stack:
            current, it = stack[-1]
            child = next(it, None)
            if child is None:
                state[current] = black
                stack.pop()
                continue
            if state[child] == grey:
                raise structure_error(
                    E_CYCLIC_HIERARCHY,
                    f"node {child} is its own ancestor (via node {current})",
                    node=child,
                    parent=current,
                )
            if state[child] == white:
                state[child] = grey
                stack.append((child, iter(nodes[child].children)))
    for node in nodes:
        node.parent = None
    for index, node in enumerate(nodes):
        for child in node.children:
            owner = nodes[child].parent
            if owner is not None:
                raise structure_error(
                    E_MULTIPLE_PARENTS,
                    f"node {child} has parents {owner} and {index}",
                    node=child,
                    parents=[owner, index],
                )
            nodes[child].parent = index


def _vec(values, default):
    return tuple(float(v) for v in values) if values is not None else default


class SceneAssembler:
    """Builds nodes, skins, cameras and scenes for one resolved document."""

    def __init__(
        self,
        gltf,
        accessors: Sequence[AccessorDescriptor],
        buffers: Sequence[bytes],
        *,
        raw_nodes: Sequence[dict] = (),
        names: bool = False,
        extras: bool = False,
    ) -> None:
        self.gltf = gltf
        self.accessors = accessors
        self.buffers = buffers
        # JSON node objects; GLTF2 drops the morph weight override.
        self.raw_nodes = raw_nodes
        self.names = names
        self.extras = extras

    def _meta(self, source) -> Optional[Meta]:
        return make_meta(source, names=self.names, extras=self.extras)

    def _check_index(self, kind: str, value, count: int, **ctx) -> None:
        if value is not None and not 0 <= value < count:
            raise reference_error(
                f"{kind} {value} does not exist", **{kind: value}, **ctx
            )

    def _node_weights(self, index: int) -> Optional[List[float]]:
        raw = self.raw_nodes[index] if index < len(self.raw_nodes) else {}
        weights = raw.get("weights") if isinstance(raw, dict) else None
        if weights is None:
            return None
        if not isinstance(weights, list) or not all(
            isinstance(w, (int, float)) and not isinstance(w, bool)
            for w in weights
        ):
            get_logger().warning(
                "node %d: ignoring malformed weights %r", index, weights
            )
            return None
        return [float(w) for w in weights]

    def build_node(self, index: int) -> Node:
        gltf = self.gltf
        src = gltf.nodes[index]
        ctx = {"node": index}
        if src.matrix is not None:
            # glTF stores matrices column-major.
            m = np.asarray(src.matrix, dtype=np.float64).reshape(4, 4).T
            transform = Transform.from_matrix(m, **ctx)
        else:
            transform = Transform(
                translation=_vec(src.translation, (0.0, 0.0, 0.0)),
                rotation=_vec(src.rotation, IDENTITY_ROTATION),
                scale=_vec(src.scale, (1.0, 1.0, 1.0)),
            )
        children = [int(c) for c in (src.children or [])]
        for child in children:
            if not 0 <= child < len(gltf.nodes):
                raise reference_error(
                    f"child node {child} does not exist", child=child, **ctx
                )
        self._check_index("mesh", src.mesh, len(gltf.meshes), **ctx)
        self._check_index("skin", src.skin, len(gltf.skins), **ctx)
        self._check_index("camera", src.camera, len(gltf.cameras), **ctx)
        return Node(
            transform=transform,
            children=children,
            mesh=src.mesh,
            skin=src.skin,
            camera=src.camera,
            weights=self._node_weights(index),
            meta=self._meta(src),
        )

    def build_nodes(self) -> List[Node]:
        nodes = [self.build_node(i) for i in range(len(self.gltf.nodes))]
        check_hierarchy(nodes)
        return nodes

    def build_skin(self, index: int) -> Skin:
        src = self.gltf.skins[index]
        ctx = {"skin": index}
        node_count = len(self.gltf.nodes)
        joints = [int(j) for j in (src.joints or [])]
        for j in joints:
            if not 0 <= j < node_count:
                raise reference_error(
                    f"joint node {j} does not exist", joint=j, **ctx
                )
        self._check_index("skeleton", src.skeleton, node_count, **ctx)
        acc = src.inverseBindMatrices
        if acc is None:
            ibm = np.tile(np.eye(4, dtype=np.float32), (len(joints), 1, 1))
        else:
            self._check_index("accessor", acc, len(self.accessors), **ctx)
            stored = decode_semantic(
                SEMANTIC_INVERSE_BIND, self.accessors[acc], self.buffers
            )
            # Column-major storage -> row-major matrices.
            ibm = np.ascontiguousarray(stored.transpose(0, 2, 1))
            if ibm.shape[0] != len(joints):
                raise structure_error(
                    E_SKIN_JOINT_COUNT_MISMATCH,
                    f"{len(joints)} joints but {ibm.shape[0]}"
                    " inverse bind matrices",
                    joints=len(joints),
                    matrices=int(ibm.shape[0]),
                    **ctx,
                )
        return Skin(
            joints=joints,
            inverse_bind_matrices=ibm,
            skeleton=src.skeleton,
            meta=self._meta(src),
        )

    def build_camera(self, index: int) -> Camera:
        src = self.gltf.cameras[index]
        if src.type == ProjectionType.ORTHOGRAPHIC.value:
            o = src.orthographic
            if o is None:
                raise reference_error(
                    "orthographic camera without parameters", camera=index
                )
            projection: Union[Perspective, Orthographic] = Orthographic(
                xmag=float(o.xmag or 0.0),
                ymag=float(o.ymag or 0.0),
                znear=float(o.znear or 0.0),
                zfar=float(o.zfar or 0.0),
            )
        else:
            p = src.perspective
            if p is None:
                raise reference_error(
                    "perspective camera without parameters", camera=index
                )
            projection = Perspective(
                yfov=float(p.yfov or 0.0),
                znear=float(p.znear or 0.0),
                zfar=float(p.zfar) if p.zfar is not None else math.inf,
                aspect_ratio=(
                    float(p.aspectRatio) if p.aspectRatio is not None else None
                ),
            )
        return Camera(projection=projection, meta=self._meta(src))

    def build_scene(self, index: int) -> Scene:
        src = self.gltf.scenes[index]
        roots = [int(n) for n in (src.nodes or [])]
        for n in roots:
            self._check_index("node", n, len(self.gltf.nodes), scene=index)
        return Scene(nodes=roots, meta=self._meta(src))
