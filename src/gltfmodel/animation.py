# ===-----------------------------------------------------------------------===#
# Distributed under the 3-Clause BSD License. See accompanying file LICENSE or
# copy at https://opensource.org/licenses/BSD-3-Clause.
# SPDX-License-Identifier: BSD-3-Clause
# ===-----------------------------------------------------------------------===#

"""Animation clips: keyframe samplers, channels and interpolation.

Sampler values are stored per keyframe. For ``CUBICSPLINE`` each keyframe
holds an ``(in_tangent, value, out_tangent)`` triple, so ``values`` has
shape ``(n, 3, width)``; other modes use ``(n, width)``. ``width`` is 3 for
translation/scale, 4 for rotation and the morph target count for weights.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

import numpy as np

from .accessor import SEMANTIC_ANIMATION_INPUT, decode_semantic
from .descriptors import AccessorDescriptor
from .errors import (
    E_DUPLICATE_CHANNEL,
    E_INTERPOLATION_DATA_MISMATCH,
    E_NON_MONOTONIC_KEYFRAMES,
    reference_error,
    structure_error,
)
from .logging import get_logger
from .meta import Meta, make_meta
from .transform import quat_slerp

__all__ = [
    "Interpolation",
    "TargetPath",
    "AnimationSampler",
    "Channel",
    "Animation",
    "AnimationBuilder",
]


class Interpolation(Enum):
    LINEAR = "LINEAR"
    STEP = "STEP"
    CUBICSPLINE = "CUBICSPLINE"


class TargetPath(Enum):
    TRANSLATION = "translation"
    ROTATION = "rotation"
    SCALE = "scale"
    WEIGHTS = "weights"


_WIDTH = {
    TargetPath.TRANSLATION: 3,
    TargetPath.ROTATION: 4,
    TargetPath.SCALE: 3,
}


@dataclass(slots=True)
class AnimationSampler:
    times: np.ndarray
    values: np.ndarray
    interpolation: Interpolation = Interpolation.LINEAR
    path: TargetPath = TargetPath.TRANSLATION

    @property
    def keyframe_count(self) -> int:
        return int(self.times.shape[0])

    @property
    def start(self) -> float:
        return float(self.times[0]) if self.times.size else 0.0

    @property
    def end(self) -> float:
        return float(self.times[-1]) if self.times.size else 0.0

    def _key(self, i: int) -> np.ndarray:
        if self.interpolation is Interpolation.CUBICSPLINE:
            return self.values[i, 1]
        return self.values[i]

    def sample(self, t: float) -> np.ndarray:
        """Evaluate the track at time ``t``, clamped to the keyframe range."""
        n = self.keyframe_count
        if n == 0:
            return np.zeros(self.values.shape[-1], dtype=np.float32)
        if n == 1 or t <= self.times[0]:
            return self._key(0).astype(np.float32)
        if t >= self.times[-1]:
            return self._key(n - 1).astype(np.float32)
        i = int(np.searchsorted(self.times, t, side="right")) - 1
        t0 = float(self.times[i])
        t1 = float(self.times[i + 1])
        dt = t1 - t0
        if self.interpolation is Interpolation.STEP or dt <= 0.0:
            return self._key(i).astype(np.float32)
        s = (t - t0) / dt
        if self.interpolation is Interpolation.CUBICSPLINE:
            v = self.values.astype(np.float64)
            p0, m0 = v[i, 1], v[i, 2] * dt
            p1, m1 = v[i + 1, 1], v[i + 1, 0] * dt
            s2 = s * s
            s3 = s2 * s
            out = (
                (2 * s3 - 3 * s2 + 1) * p0
                + (s3 - 2 * s2 + s) * m0
                + (-2 * s3 + 3 * s2) * p1
                + (s3 - s2) * m1
            )
            if self.path is TargetPath.ROTATION:
                out = out / np.linalg.norm(out)
            return out.astype(np.float32)
        a = self.values[i].astype(np.float64)
        b = self.values[i + 1].astype(np.float64)
        if self.path is TargetPath.ROTATION:
            return quat_slerp(a, b, s).astype(np.float32)
        return (a + (b - a) * s).astype(np.float32)


@dataclass(slots=True)
class Channel:
    node: int
    path: TargetPath
    sampler: int


@dataclass(slots=True)
class Animation:
    channels: List[Channel] = field(default_factory=list)
    # Indexed by source sampler index; None for samplers no channel uses.
    samplers: List[Optional[AnimationSampler]] = field(default_factory=list)
    meta: Optional[Meta] = None

    @property
    def duration(self) -> float:
        ends = [s.end for s in self.samplers if s is not None]
        return max(ends) if ends else 0.0

    def node_tracks(self) -> Dict[int, Dict[TargetPath, AnimationSampler]]:
        """Samplers grouped by target node, then by animated property."""
        tracks: Dict[int, Dict[TargetPath, AnimationSampler]] = {}
        for ch in self.channels:
            sampler = self.samplers[ch.sampler]
            if sampler is not None:
                tracks.setdefault(ch.node, {})[ch.path] = sampler
        return tracks


class AnimationBuilder:
    """Decodes and validates the animations of one resolved document."""

    def __init__(
        self,
        gltf,
        accessors: Sequence[AccessorDescriptor],
        buffers: Sequence[bytes],
        *,
        names: bool = False,
        extras: bool = False,
    ) -> None:
        self.gltf = gltf
        self.accessors = accessors
        self.buffers = buffers
        self.names = names
        self.extras = extras

    def _decode(self, semantic: str, accessor_index, **ctx) -> np.ndarray:
        if accessor_index is None or not (
            0 <= accessor_index < len(self.accessors)
        ):
            raise reference_error(
                f"accessor {accessor_index} does not exist",
                accessor=accessor_index,
                **ctx,
            )
        return decode_semantic(
            semantic, self.accessors[accessor_index], self.buffers
        )

    def _times(self, src, **ctx) -> np.ndarray:
        times = self._decode(SEMANTIC_ANIMATION_INPUT, src.input, **ctx)
        if times.size == 0:
            raise structure_error(
                E_INTERPOLATION_DATA_MISMATCH, "Sampler has no keyframes", **ctx
            )
        finite = np.isfinite(times)
        if not np.all(finite):
            at = int(np.argmin(finite))
            raise structure_error(
                E_NON_MONOTONIC_KEYFRAMES,
                f"Keyframe time {float(times[at])} is not finite",
                keyframe=at,
                **ctx,
            )
        steps = np.diff(times)
        if np.any(steps < 0.0):
            at = int(np.argmax(steps < 0.0)) + 1
            raise structure_error(
                E_NON_MONOTONIC_KEYFRAMES,
                f"Keyframe time {float(times[at])} follows"
                f" {float(times[at - 1])}",
                keyframe=at,
                **ctx,
            )
        return times

    def _morph_target_count(self, node_index: int) -> Optional[int]:
        node = self.gltf.nodes[node_index]
        if node.mesh is None or not 0 <= node.mesh < len(self.gltf.meshes):
            return None
        prims = self.gltf.meshes[node.mesh].primitives or []
        if not prims:
            return None
        return len(prims[0].targets or []) or None

    def _sampler(
        self,
        src,
        times: np.ndarray,
        path: TargetPath,
        node_index: int,
        **ctx,
    ) -> AnimationSampler:
        try:
            interp = Interpolation(src.interpolation or "LINEAR")
        except ValueError:
            raise structure_error(
                E_INTERPOLATION_DATA_MISMATCH,
                f"Unknown interpolation {src.interpolation!r}",
                **ctx,
            ) from None
        raw = self._decode(path.value, src.output, **ctx)
        n = int(times.shape[0])
        per_key = 3 if interp is Interpolation.CUBICSPLINE else 1
        if path is TargetPath.WEIGHTS:
            flat = raw.reshape(-1)
            width = self._morph_target_count(node_index)
            if width is None:
                width = flat.size // (n * per_key) if n else 0
            if width == 0 or flat.size != n * per_key * width:
                raise structure_error(
                    E_INTERPOLATION_DATA_MISMATCH,
                    f"{flat.size} weights for {n} keyframes"
                    f" of {interp.value} data",
                    keyframes=n,
                    values=int(flat.size),
                    **ctx,
                )
            values = flat.reshape(n * per_key, width)
        else:
            values = raw
            width = _WIDTH[path]
            if values.shape[0] != n * per_key:
                raise structure_error(
                    E_INTERPOLATION_DATA_MISMATCH,
                    f"{values.shape[0]} values for {n} keyframes"
                    f" of {interp.value} data (expected {n * per_key})",
                    keyframes=n,
                    values=int(values.shape[0]),
                    **ctx,
                )
        if per_key == 3:
            values = values.reshape(n, 3, width)
        return AnimationSampler(
            times=times, values=values, interpolation=interp, path=path
        )

    def build(self, gltf_anim, index: int) -> Animation:
        samplers_src = gltf_anim.samplers or []
        times = [
            self._times(s, animation=index, sampler=i)
            for i, s in enumerate(samplers_src)
        ]
        samplers: List[Optional[AnimationSampler]] = [None] * len(samplers_src)
        channels: List[Channel] = []
        seen: Dict[tuple, int] = {}
        node_count = len(self.gltf.nodes)
        for ci, ch in enumerate(gltf_anim.channels or []):
            ctx = {"animation": index, "channel": ci}
            if ch.sampler is None or not 0 <= ch.sampler < len(samplers_src):
                raise reference_error(
                    f"sampler {ch.sampler} does not exist",
                    sampler=ch.sampler,
                    **ctx,
                )
            target = ch.target
            if target is None or target.node is None:
                get_logger().debug(
                    "animation %d channel %d has no target node, skipped",
                    index,
                    ci,
                )
                continue
            if not 0 <= target.node < node_count:
                raise reference_error(
                    f"node {target.node} does not exist",
                    node=target.node,
                    **ctx,
                )
            try:
                path = TargetPath(target.path)
            except ValueError:
                get_logger().warning(
                    "animation %d channel %d: unsupported path %r, skipped",
                    index,
                    ci,
                    target.path,
                )
                continue
            key = (target.node, path)
            if key in seen:
                raise structure_error(
                    E_DUPLICATE_CHANNEL,
                    f"node {target.node} {path.value} is already animated"
                    f" by channel {seen[key]}",
                    node=target.node,
                    **ctx,
                )
            seen[key] = ci
            existing = samplers[ch.sampler]
            if existing is None:
                samplers[ch.sampler] = self._sampler(
                    samplers_src[ch.sampler],
                    times[ch.sampler],
                    path,
                    target.node,
                    sampler=ch.sampler,
                    **ctx,
                )
            elif existing.path is not path:
                raise structure_error(
                    E_INTERPOLATION_DATA_MISMATCH,
                    f"sampler {ch.sampler} drives both {existing.path.value}"
                    f" and {path.value}",
                    sampler=ch.sampler,
                    **ctx,
                )
            channels.append(
                Channel(node=target.node, path=path, sampler=ch.sampler)
            )
        return Animation(
            channels=channels,
            samplers=samplers,
            meta=make_meta(gltf_anim, names=self.names, extras=self.extras),
        )
