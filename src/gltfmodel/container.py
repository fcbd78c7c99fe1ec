# ===-----------------------------------------------------------------------===#
# Distributed under the 3-Clause BSD License. See accompanying file LICENSE or
# copy at https://opensource.org/licenses/BSD-3-Clause.
# SPDX-License-Identifier: BSD-3-Clause
# ===-----------------------------------------------------------------------===#

"""Container resolution: document parsing and buffer/image byte lookup.

Accepted inputs:
- ``.gltf`` JSON with sidecar ``.bin`` / image files
- ``.glb`` binary container (JSON chunk + optional BIN chunk)
- either form with ``data:`` URIs embedded in the JSON

The JSON is handed to pygltflib (``GLTF2.from_dict``) which provides the
typed descriptor objects; every buffer is then resolved to an immutable
``bytes`` object.
"""

from __future__ import annotations

import base64
import binascii
import json
import mimetypes
import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Tuple
from urllib.parse import unquote, unquote_to_bytes

from pygltflib import GLTF2

from .descriptors import AccessorDescriptor, describe_accessors
from .errors import (
    E_INVALID_ENCODING,
    E_MALFORMED_CONTAINER,
    E_MISSING_FILE,
    reference_error,
    resolution_error,
)
from .logging import get_logger

__all__ = [
    "ResolvedDocument",
    "resolve_path",
    "resolve_bytes",
    "resolve_image_bytes",
    "decode_data_uri",
    "parse_glb",
]

GLB_MAGIC = b"glTF"
GLB_VERSION = 2
GLB_HEADER_SIZE = 12
CHUNK_HEADER_SIZE = 8
CHUNK_JSON = 0x4E4F534A
CHUNK_BIN = 0x004E4942

_PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
_JPEG_MAGIC = b"\xff\xd8\xff"


@dataclass(slots=True)
class ResolvedDocument:
    gltf: GLTF2
    buffers: List[bytes]
    base_dir: Optional[Path] = None
    accessors: List[AccessorDescriptor] = field(default_factory=list)
    # Parsed JSON, for properties GLTF2 does not model (node weights).
    raw: dict[str, Any] = field(default_factory=dict)


def parse_glb(data: bytes) -> Tuple[dict[str, Any], Optional[bytes]]:
    """Split a .glb container into (json dict, BIN chunk or None)."""
    if len(data) < GLB_HEADER_SIZE:
        raise resolution_error(
            E_MALFORMED_CONTAINER,
            f"GLB header truncated: {len(data)} < {GLB_HEADER_SIZE} bytes",
        )
    magic, version, total = struct.unpack_from("<4sII", data, 0)
    if magic != GLB_MAGIC:
        raise resolution_error(
            E_MALFORMED_CONTAINER, f"Bad GLB magic {magic!r}"
        )
    if version != GLB_VERSION:
        raise resolution_error(
            E_MALFORMED_CONTAINER, f"Unsupported GLB version {version}"
        )
    if total > len(data):
        raise resolution_error(
            E_MALFORMED_CONTAINER,
            f"GLB truncated: header declares {total} bytes, got {len(data)}",
        )
    chunks: List[Tuple[int, bytes]] = []
    offset = GLB_HEADER_SIZE
    while offset < total:
        if offset + CHUNK_HEADER_SIZE > total:
            raise resolution_error(
                E_MALFORMED_CONTAINER,
                f"Chunk header truncated at offset {offset}",
                chunk=len(chunks),
            )
        length, ctype = struct.unpack_from("<II", data, offset)
        start = offset + CHUNK_HEADER_SIZE
        if start + length > total:
            raise resolution_error(
                E_MALFORMED_CONTAINER,
                f"Chunk length {length} at offset {offset} exceeds container",
                chunk=len(chunks),
            )
        chunks.append((ctype, data[start : start + length]))
        offset = start + length
    if not chunks or chunks[0][0] != CHUNK_JSON:
        raise resolution_error(
            E_MALFORMED_CONTAINER, "First GLB chunk must be JSON"
        )
    blob = None
    if len(chunks) > 1 and chunks[1][0] == CHUNK_BIN:
        blob = chunks[1][1]
    return _parse_json(chunks[0][1]), blob


def _parse_json(raw: bytes | str) -> dict[str, Any]:
    try:
        data = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise resolution_error(
            E_MALFORMED_CONTAINER, f"Invalid glTF JSON: {e}"
        ) from e
    if not isinstance(data, dict):
        raise resolution_error(
            E_MALFORMED_CONTAINER, "Root of glTF JSON must be an object"
        )
    return data


def decode_data_uri(uri: str, **context: Any) -> Tuple[bytes, Optional[str]]:
    """Decode a ``data:`` URI into (payload, mime type)."""
    header, sep, payload = uri.partition(",")
    if not sep:
        raise resolution_error(
            E_INVALID_ENCODING, "Data URI without ',' separator", **context
        )
    params = header[len("data:") :].split(";")
    mime = params[0] or None
    if "base64" in params[1:]:
        try:
            return base64.b64decode(payload, validate=True), mime
        except (binascii.Error, ValueError) as e:
            raise resolution_error(
                E_INVALID_ENCODING, f"Invalid base64 payload: {e}", **context
            ) from e
    return unquote_to_bytes(payload), mime


def _read_external(
    uri: str, base_dir: Optional[Path], **context: Any
) -> bytes:
    if base_dir is None:
        raise resolution_error(
            E_MISSING_FILE,
            f"External URI '{uri}' needs a base directory",
            uri=uri,
            **context,
        )
    base = base_dir.resolve()
    path = (base / unquote(uri)).resolve()
    try:
        path.relative_to(base)
    except ValueError:
        raise resolution_error(
            E_MISSING_FILE,
            f"URI '{uri}' escapes the document directory",
            uri=uri,
            **context,
        ) from None
    try:
        return path.read_bytes()
    except OSError as e:
        raise resolution_error(
            E_MISSING_FILE, f"Cannot open '{path}': {e}", uri=uri, **context
        ) from e


def _resolve_buffers(
    gltf: GLTF2, blob: Optional[bytes], base_dir: Optional[Path]
) -> List[bytes]:
    logger = get_logger()
    resolved: List[bytes] = []
    for i, buf in enumerate(gltf.buffers):
        uri = buf.uri
        if uri is None:
            if i != 0 or blob is None:
                raise resolution_error(
                    E_MALFORMED_CONTAINER,
                    "Buffer without URI but no GLB BIN chunk",
                    buffer=i,
                )
            data = blob
        elif uri.startswith("data:"):
            data, _ = decode_data_uri(uri, buffer=i)
        else:
            data = _read_external(uri, base_dir, buffer=i)
        declared = int(buf.byteLength or 0)
        if len(data) < declared:
            logger.warning(
                "buffer %d: %d bytes resolved, %d declared",
                i,
                len(data),
                declared,
            )
        resolved.append(data)
    return resolved


def _build(
    data: dict[str, Any], blob: Optional[bytes], base_dir: Optional[Path]
) -> ResolvedDocument:
    gltf = GLTF2.from_dict(data)
    buffers = _resolve_buffers(gltf, blob, base_dir)
    return ResolvedDocument(
        gltf=gltf,
        buffers=buffers,
        base_dir=base_dir,
        accessors=describe_accessors(gltf),
        raw=data,
    )


def resolve_bytes(
    data: bytes, base_dir: str | Path | None = None
) -> ResolvedDocument:
    """Resolve an in-memory .glb or .gltf document."""
    base = Path(base_dir) if base_dir is not None else None
    if data[:4] == GLB_MAGIC:
        doc, blob = parse_glb(data)
    else:
        doc, blob = _parse_json(data), None
    return _build(doc, blob, base)


def resolve_path(path: str | Path) -> ResolvedDocument:
    p = Path(path)
    try:
        data = p.read_bytes()
    except OSError as e:
        raise resolution_error(
            E_MISSING_FILE, f"Cannot open '{p}': {e}", uri=str(p)
        ) from e
    get_logger().debug("read %s (%d bytes)", p.name, len(data))
    return resolve_bytes(data, p.parent)


def _sniff_mime(data: bytes) -> Optional[str]:
    if data.startswith(_PNG_MAGIC):
        return "image/png"
    if data.startswith(_JPEG_MAGIC):
        return "image/jpeg"
    return None


def resolve_image_bytes(
    document: ResolvedDocument, image_index: int
) -> Tuple[bytes, Optional[str]]:
    """Return the encoded bytes and mime type of an image (not decoded)."""
    gltf = document.gltf
    image = gltf.images[image_index]
    mime = image.mimeType
    if image.bufferView is not None:
        view_index = image.bufferView
        if not 0 <= view_index < len(gltf.bufferViews):
            raise reference_error(
                f"bufferView {view_index} does not exist",
                image=image_index,
                buffer_view=view_index,
            )
        bv = gltf.bufferViews[view_index]
        if bv.buffer is None or not 0 <= bv.buffer < len(document.buffers):
            raise reference_error(
                f"buffer {bv.buffer} does not exist",
                image=image_index,
                buffer_view=view_index,
            )
        buffer = document.buffers[bv.buffer]
        start = int(bv.byteOffset or 0)
        end = start + int(bv.byteLength or 0)
        if end > len(buffer):
            raise resolution_error(
                E_MALFORMED_CONTAINER,
                f"Image view [{start}:{end}] exceeds buffer of {len(buffer)}",
                image=image_index,
            )
        data = buffer[start:end]
    elif image.uri and image.uri.startswith("data:"):
        data, uri_mime = decode_data_uri(image.uri, image=image_index)
        mime = mime or uri_mime
    elif image.uri:
        data = _read_external(image.uri, document.base_dir, image=image_index)
        mime = mime or mimetypes.guess_type(unquote(image.uri))[0]
    else:
        raise reference_error(
            "Image has neither uri nor bufferView", image=image_index
        )
    return data, mime or _sniff_mime(data)
