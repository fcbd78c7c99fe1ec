# ===-----------------------------------------------------------------------===#
# Distributed under the 3-Clause BSD License. See accompanying file LICENSE or
# copy at https://opensource.org/licenses/BSD-3-Clause.
# SPDX-License-Identifier: BSD-3-Clause
# ===-----------------------------------------------------------------------===#

"""High-level loading API.

``load`` / ``load_bytes`` run the whole pipeline: resolve the container,
translate materials, build meshes, assemble the scene graph and decode
animations. The load is all-or-nothing: the first failure propagates as a
:class:`~gltfmodel.errors.LoadError` and no model is returned.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from functools import partial
from pathlib import Path
from typing import Callable, Dict, List, Optional, TypeVar

from .animation import AnimationBuilder
from .container import ResolvedDocument, resolve_bytes, resolve_path
from .errors import reference_error
from .logging import get_logger
from .material import MaterialTranslator, material_uses_normal_map
from .mesh import MeshBuilder
from .model import Model
from .options import LoadOptions
from .reporting import task
from .scene import SceneAssembler

__all__ = ["load", "load_bytes", "build_model"]

T = TypeVar("T")


def _run_indexed(
    task_id: str,
    name: str,
    count: int,
    fn: Callable[[int], T],
    workers: int,
) -> List[T]:
    """Run ``fn(i)`` for every index, each result in its own slot.

    With more than one worker the calls go to a thread pool. On failure the
    work queued after the failing index is cancelled, everything before it
    still completes, and the lowest failing index is re-raised so the error
    matches a sequential run.
    """
    slots: List[Optional[T]] = [None] * count
    with task(task_id, name, total=count) as rep:
        if workers <= 1 or count <= 1:
            for i in range(count):
                slots[i] = fn(i)
                rep.advance(task_id, current_item=f"#{i}")
            return slots  # type: ignore[return-value]
        failures: Dict[int, BaseException] = {}
        executor = ThreadPoolExecutor(
            max_workers=min(workers, count), thread_name_prefix="gltfmodel"
        )
        try:
            futures: Dict[Future, int] = {
                executor.submit(fn, i): i for i in range(count)
            }
            for future in as_completed(futures):
                i = futures[future]
                if future.cancelled():
                    continue
                exc = future.exception()
                if exc is not None:
                    failures[i] = exc
                    for other, j in futures.items():
                        if j > i:
                            other.cancel()
                    continue
                slots[i] = future.result()
                rep.advance(task_id, current_item=f"#{i}")
        finally:
            executor.shutdown(wait=True, cancel_futures=True)
        if failures:
            raise failures[min(failures)]
    return slots  # type: ignore[return-value]


def build_model(document: ResolvedDocument, options: LoadOptions) -> Model:
    """Translate a resolved document into a :class:`Model`."""
    logger = get_logger()
    gltf = document.gltf
    workers = options.workers
    model = Model()

    if options.load_materials:
        translator = MaterialTranslator(
            document, names=options.names, extras=options.extras
        )
        with task("samplers", "Translate samplers"):
            model.samplers = [
                translator.translate_sampler(i)
                for i in range(len(gltf.samplers))
            ]
        model.images = _run_indexed(
            "images",
            "Resolve images",
            len(gltf.images),
            translator.translate_image,
            workers,
        )
        model.textures = [
            translator.translate_texture(i) for i in range(len(gltf.textures))
        ]
        model.materials = _run_indexed(
            "materials",
            "Translate materials",
            len(gltf.materials),
            translator.translate_material,
            workers,
        )
    else:
        logger.debug("material translation disabled")

    meshes = MeshBuilder(
        document.accessors,
        document.buffers,
        material_count=len(gltf.materials),
        needs_tangents=partial(material_uses_normal_map, gltf),
        generate_normals=options.generate_normals,
        generate_tangents=options.generate_tangents,
        names=options.names,
        extras=options.extras,
    )
    model.meshes = _run_indexed(
        "meshes",
        "Build meshes",
        len(gltf.meshes),
        lambda i: meshes.build(gltf.meshes[i], i),
        workers,
    )

    assembler = SceneAssembler(
        gltf,
        document.accessors,
        document.buffers,
        raw_nodes=document.raw.get("nodes") or [],
        names=options.names,
        extras=options.extras,
    )
    with task("scene", "Assemble scene graph", total=len(gltf.nodes)) as rep:
        model.nodes = assembler.build_nodes()
        rep.advance("scene", len(model.nodes), entries=len(model.nodes))
        model.skins = [assembler.build_skin(i) for i in range(len(gltf.skins))]
        model.cameras = [
            assembler.build_camera(i) for i in range(len(gltf.cameras))
        ]
        model.scenes = [
            assembler.build_scene(i) for i in range(len(gltf.scenes))
        ]
        if gltf.scene is not None and not 0 <= gltf.scene < len(gltf.scenes):
            raise reference_error(
                f"default scene {gltf.scene} does not exist", scene=gltf.scene
            )
        model.scene = gltf.scene

    animations = AnimationBuilder(
        gltf,
        document.accessors,
        document.buffers,
        names=options.names,
        extras=options.extras,
    )
    model.animations = _run_indexed(
        "animations",
        "Decode animations",
        len(gltf.animations),
        lambda i: animations.build(gltf.animations[i], i),
        workers,
    )

    s = model.summary()
    logger.info(
        "Loaded model: meshes=%d primitives=%d vertices=%d materials=%d"
        " nodes=%d animations=%d",
        s["meshes"],
        s["primitives"],
        s["vertices"],
        s["materials"],
        s["nodes"],
        s["animations"],
    )
    return model


def load(path: str | Path, options: LoadOptions | None = None) -> Model:
    """Load a ``.gltf`` or ``.glb`` file."""
    options = options or LoadOptions()
    with task("resolve", "Resolve buffers") as rep:
        document = resolve_path(path)
        rep.advance(
            "resolve",
            len(document.buffers),
            bytes=sum(len(b) for b in document.buffers),
        )
    return build_model(document, options)


def load_bytes(
    data: bytes,
    options: LoadOptions | None = None,
    base_dir: str | Path | None = None,
) -> Model:
    """Load an in-memory document.

    ``base_dir`` is where external URIs are looked up; without it only
    embedded (GLB / data URI) content can be resolved.
    """
    options = options or LoadOptions()
    with task("resolve", "Resolve buffers") as rep:
        document = resolve_bytes(data, base_dir)
        rep.advance(
            "resolve",
            len(document.buffers),
            bytes=sum(len(b) for b in document.buffers),
        )
    return build_model(document, options)
