"""Small in-test glTF asset builder.

Accessor data goes into a single binary blob; the document can then be
emitted as ``.gltf`` + ``.bin`` sidecar, JSON with an embedded base64 data
URI, or a ``.glb`` container.
"""

from __future__ import annotations

import base64
import copy
import json
import struct
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

COMPONENT = {
    "int8": 5120,
    "uint8": 5121,
    "int16": 5122,
    "uint16": 5123,
    "uint32": 5125,
    "float32": 5126,
}
TYPES = {1: "SCALAR", 2: "VEC2", 3: "VEC3", 4: "VEC4", 16: "MAT4"}

TRIANGLE = [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]


class AssetBuilder:
    def __init__(self) -> None:
        self.blob = bytearray()
        self.doc: Dict[str, Any] = {"asset": {"version": "2.0"}}

    def add(self, key: str, obj: Dict[str, Any]) -> int:
        items = self.doc.setdefault(key, [])
        items.append(obj)
        return len(items) - 1

    def add_view(self, data: bytes, *, stride: Optional[int] = None) -> int:
        while len(self.blob) % 4:
            self.blob.append(0)
        offset = len(self.blob)
        self.blob.extend(data)
        view = {"buffer": 0, "byteOffset": offset, "byteLength": len(data)}
        if stride:
            view["byteStride"] = stride
        return self.add("bufferViews", view)

    def add_accessor(
        self,
        values,
        *,
        dtype: str = "float32",
        type: Optional[str] = None,
        normalized: bool = False,
        view: Optional[int] = None,
        **extra: Any,
    ) -> int:
        arr = np.asarray(values, dtype=dtype)
        if arr.ndim == 1:
            arr = arr.reshape(-1, 1)
        if view is None:
            view = self.add_view(arr.tobytes())
        acc = {
            "bufferView": view,
            "componentType": COMPONENT[arr.dtype.name],
            "count": int(arr.shape[0]),
            "type": type or TYPES[arr.shape[1]],
        }
        if normalized:
            acc["normalized"] = True
        acc.update(extra)
        return self.add("accessors", acc)

    def add_primitive(
        self,
        positions=TRIANGLE,
        *,
        indices=None,
        mode: Optional[int] = None,
        material: Optional[int] = None,
        **attributes,
    ) -> Dict[str, Any]:
        """Primitive dict; extra keyword arrays become float attributes."""
        attrs = {"POSITION": self.add_accessor(positions)}
        for name, data in attributes.items():
            attrs[name] = (
                data if isinstance(data, int) else self.add_accessor(data)
            )
        prim: Dict[str, Any] = {"attributes": attrs}
        if indices is not None:
            prim["indices"] = self.add_accessor(
                indices, dtype="uint16", type="SCALAR"
            )
        if mode is not None:
            prim["mode"] = mode
        if material is not None:
            prim["material"] = material
        return prim

    def add_mesh(self, *primitives: Dict[str, Any], **extra: Any) -> int:
        return self.add("meshes", {"primitives": list(primitives), **extra})

    def add_node(self, **fields: Any) -> int:
        return self.add("nodes", dict(fields))

    def add_scene(self, nodes: List[int], **extra: Any) -> int:
        index = self.add("scenes", {"nodes": nodes, **extra})
        self.doc.setdefault("scene", index)
        return index

    # -- output variants -------------------------------------------------

    def document(self, uri: Optional[str] = None) -> Dict[str, Any]:
        doc = copy.deepcopy(self.doc)
        if self.blob:
            buf: Dict[str, Any] = {"byteLength": len(self.blob)}
            if uri is not None:
                buf["uri"] = uri
            doc["buffers"] = [buf]
        return doc

    def embedded_json(self) -> bytes:
        payload = base64.b64encode(bytes(self.blob)).decode("ascii")
        uri = f"data:application/octet-stream;base64,{payload}"
        return json.dumps(self.document(uri)).encode("utf-8")

    def write_gltf(self, directory: Path, name: str = "asset") -> Path:
        bin_name = f"{name}.bin"
        (directory / bin_name).write_bytes(bytes(self.blob))
        path = directory / f"{name}.gltf"
        path.write_text(json.dumps(self.document(bin_name)), encoding="utf-8")
        return path

    def glb(self) -> bytes:
        return make_glb(self.document(), bytes(self.blob))

    def write_glb(self, directory: Path, name: str = "asset") -> Path:
        path = directory / f"{name}.glb"
        path.write_bytes(self.glb())
        return path


def make_glb(doc: Dict[str, Any], blob: Optional[bytes]) -> bytes:
    js = json.dumps(doc).encode("utf-8")
    js += b" " * (-len(js) % 4)
    chunks = struct.pack("<II", len(js), 0x4E4F534A) + js
    if blob:
        data = blob + b"\x00" * (-len(blob) % 4)
        chunks += struct.pack("<II", len(data), 0x004E4942) + data
    header = struct.pack("<4sII", b"glTF", 2, 12 + len(chunks))
    return header + chunks


def triangle_asset() -> AssetBuilder:
    """One mesh, one triangle (no normals, no indices), one node, one scene."""
    b = AssetBuilder()
    mesh = b.add_mesh(b.add_primitive())
    node = b.add_node(mesh=mesh)
    b.add_scene([node])
    return b
