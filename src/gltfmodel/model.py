# ===-----------------------------------------------------------------------===#
# Distributed under the 3-Clause BSD License. See accompanying file LICENSE or
# copy at https://opensource.org/licenses/BSD-3-Clause.
# SPDX-License-Identifier: BSD-3-Clause
# ===-----------------------------------------------------------------------===#

"""The loaded model aggregate."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np

from .animation import Animation
from .errors import reference_error
from .material import Image, Material, Sampler, Texture
from .mesh import Mesh
from .scene import Camera, Node, Scene, Skin

__all__ = ["Model"]


@dataclass(slots=True)
class Model:
    meshes: List[Mesh] = field(default_factory=list)
    materials: List[Material] = field(default_factory=list)
    textures: List[Texture] = field(default_factory=list)
    images: List[Image] = field(default_factory=list)
    samplers: List[Sampler] = field(default_factory=list)
    nodes: List[Node] = field(default_factory=list)
    skins: List[Skin] = field(default_factory=list)
    cameras: List[Camera] = field(default_factory=list)
    animations: List[Animation] = field(default_factory=list)
    scenes: List[Scene] = field(default_factory=list)
    # Default scene index (None when the asset names none).
    scene: Optional[int] = None

    def scene_roots(self, index: Optional[int] = None) -> List[int]:
        """Root node indices of a scene.

        Falls back to the default scene, then the first scene, then every
        parentless node when the asset declares no scenes. An unknown
        scene index raises ``E_INVALID_REFERENCE``.
        """
        if index is None:
            if not self.scenes:
                return [
                    i for i, n in enumerate(self.nodes) if n.parent is None
                ]
            index = self.scene if self.scene is not None else 0
        if not 0 <= index < len(self.scenes):
            raise reference_error(
                f"scene {index} does not exist", scene=index
            )
        return list(self.scenes[index].nodes)

    def world_matrices(self) -> List[np.ndarray]:
        """Row-major world matrix of every node, in node order."""
        world: List[Optional[np.ndarray]] = [None] * len(self.nodes)
        for root, node in enumerate(self.nodes):
            if node.parent is not None:
                continue
            stack = [(root, np.eye(4))]
            while stack:
                index, parent_m = stack.pop()
                m = parent_m @ self.nodes[index].transform.matrix()
                world[index] = m
                stack.extend((c, m) for c in self.nodes[index].children)
        return [m if m is not None else np.eye(4) for m in world]

    def summary(self) -> Dict[str, Any]:
        return {
            "meshes": len(self.meshes),
            "primitives": sum(len(m.primitives) for m in self.meshes),
            "vertices": sum(m.vertex_count for m in self.meshes),
            "materials": len(self.materials),
            "textures": len(self.textures),
            "images": len(self.images),
            "samplers": len(self.samplers),
            "nodes": len(self.nodes),
            "skins": len(self.skins),
            "cameras": len(self.cameras),
            "animations": len(self.animations),
            "duration": max(
                (a.duration for a in self.animations), default=0.0
            ),
            "scenes": len(self.scenes),
            "scene": self.scene,
        }
