"""Container resolution: sidecar files, data URIs and GLB chunks."""

from __future__ import annotations

import base64
import json
import struct
from pathlib import Path

import pytest

from gltfmodel.container import (
    decode_data_uri,
    parse_glb,
    resolve_bytes,
    resolve_image_bytes,
    resolve_path,
)
from gltfmodel.errors import (
    E_INVALID_ENCODING,
    E_MALFORMED_CONTAINER,
    E_MISSING_FILE,
    ResolutionError,
)
from gltfmodel.api import load_bytes

from gltf_builder import make_glb, triangle_asset

PNG_1x1 = (
    b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01"
    b"\x08\x06\x00\x00\x00\x1f\x15\xc4\x89"
)


def test_gltf_with_sidecar_bin(tmp_path: Path):
    b = triangle_asset()
    path = b.write_gltf(tmp_path)
    doc = resolve_path(path)
    assert doc.buffers == [bytes(b.blob)]
    assert doc.base_dir == tmp_path
    assert len(doc.accessors) == 1
    assert doc.raw["buffers"][0]["uri"] == "asset.bin"


def test_glb_and_embedded_resolve_to_same_bytes(tmp_path: Path):
    b = triangle_asset()
    glb = resolve_path(b.write_glb(tmp_path))
    embedded = resolve_bytes(b.embedded_json())
    assert glb.buffers[0][: len(b.blob)] == bytes(b.blob)
    assert embedded.buffers[0] == bytes(b.blob)
    assert "uri" not in glb.raw["buffers"][0]


def test_invalid_base64_padding_raises_and_no_model():
    b = triangle_asset()
    doc = b.document("data:application/octet-stream;base64,AAECAw=")
    with pytest.raises(ResolutionError) as exc:
        load_bytes(json.dumps(doc).encode())
    assert exc.value.code == E_INVALID_ENCODING
    assert exc.value.context == {"buffer": 0}


def test_invalid_base64_characters():
    with pytest.raises(ResolutionError) as exc:
        decode_data_uri("data:application/octet-stream;base64,AA*A")
    assert exc.value.code == E_INVALID_ENCODING


def test_data_uri_without_base64_is_percent_decoded():
    data, mime = decode_data_uri("data:text/plain,a%20b")
    assert data == b"a b"
    assert mime == "text/plain"


def test_missing_sidecar_file(tmp_path: Path):
    b = triangle_asset()
    path = b.write_gltf(tmp_path)
    (tmp_path / "asset.bin").unlink()
    with pytest.raises(ResolutionError) as exc:
        resolve_path(path)
    assert exc.value.code == E_MISSING_FILE


def test_missing_document(tmp_path: Path):
    with pytest.raises(ResolutionError) as exc:
        resolve_path(tmp_path / "nope.gltf")
    assert exc.value.code == E_MISSING_FILE


def test_uri_escaping_document_directory(tmp_path: Path):
    inner = tmp_path / "inner"
    inner.mkdir()
    b = triangle_asset()
    (tmp_path / "outside.bin").write_bytes(bytes(b.blob))
    path = inner / "asset.gltf"
    path.write_text(json.dumps(b.document("../outside.bin")))
    with pytest.raises(ResolutionError) as exc:
        resolve_path(path)
    assert exc.value.code == E_MISSING_FILE


def test_percent_encoded_uri(tmp_path: Path):
    b = triangle_asset()
    (tmp_path / "my mesh.bin").write_bytes(bytes(b.blob))
    path = tmp_path / "asset.gltf"
    path.write_text(json.dumps(b.document("my%20mesh.bin")))
    assert resolve_path(path).buffers[0] == bytes(b.blob)


def test_external_uri_needs_base_dir():
    b = triangle_asset()
    data = json.dumps(b.document("asset.bin")).encode()
    with pytest.raises(ResolutionError) as exc:
        resolve_bytes(data)
    assert exc.value.code == E_MISSING_FILE


def test_uri_less_buffer_without_bin_chunk():
    b = triangle_asset()
    data = make_glb(b.document(), None)
    with pytest.raises(ResolutionError) as exc:
        resolve_bytes(data)
    assert exc.value.code == E_MALFORMED_CONTAINER


def test_invalid_json():
    with pytest.raises(ResolutionError) as exc:
        resolve_bytes(b"{not json")
    assert exc.value.code == E_MALFORMED_CONTAINER


def test_json_root_not_object():
    with pytest.raises(ResolutionError) as exc:
        resolve_bytes(b"[1, 2]")
    assert exc.value.code == E_MALFORMED_CONTAINER


@pytest.mark.parametrize(
    "mutate",
    [
        lambda d: d[:10],
        lambda d: b"glTF" + struct.pack("<I", 1) + d[8:],
        lambda d: d[:8] + struct.pack("<I", len(d) + 16) + d[12:],
        lambda d: d[:-4],
    ],
    ids=["short-header", "version-1", "declared-too-long", "truncated"],
)
def test_malformed_glb(mutate):
    glb = triangle_asset().glb()
    with pytest.raises(ResolutionError) as exc:
        parse_glb(mutate(glb))
    assert exc.value.code == E_MALFORMED_CONTAINER


def test_glb_bad_magic():
    glb = triangle_asset().glb()
    with pytest.raises(ResolutionError) as exc:
        parse_glb(b"gltf" + glb[4:])
    assert exc.value.code == E_MALFORMED_CONTAINER


def test_glb_first_chunk_must_be_json():
    body = struct.pack("<II", 4, 0x004E4942) + b"\x00" * 4
    data = struct.pack("<4sII", b"glTF", 2, 12 + len(body)) + body
    with pytest.raises(ResolutionError) as exc:
        parse_glb(data)
    assert exc.value.code == E_MALFORMED_CONTAINER


def test_image_bytes_from_buffer_view():
    b = triangle_asset()
    view = b.add_view(PNG_1x1)
    b.add("images", {"bufferView": view, "mimeType": "image/png"})
    doc = resolve_bytes(b.embedded_json())
    data, mime = resolve_image_bytes(doc, 0)
    assert data == PNG_1x1
    assert mime == "image/png"


def test_image_bytes_from_data_uri():
    b = triangle_asset()
    payload = base64.b64encode(PNG_1x1).decode()
    b.add("images", {"uri": f"data:image/png;base64,{payload}"})
    doc = resolve_bytes(b.embedded_json())
    assert resolve_image_bytes(doc, 0) == (PNG_1x1, "image/png")


def test_external_image_mime_from_extension(tmp_path: Path):
    b = triangle_asset()
    (tmp_path / "tex.png").write_bytes(PNG_1x1)
    b.add("images", {"uri": "tex.png"})
    doc = resolve_path(b.write_gltf(tmp_path))
    assert resolve_image_bytes(doc, 0) == (PNG_1x1, "image/png")


def test_external_image_mime_sniffed(tmp_path: Path):
    b = triangle_asset()
    (tmp_path / "tex").write_bytes(b"\xff\xd8\xff\xe0rest")
    b.add("images", {"uri": "tex"})
    doc = resolve_path(b.write_gltf(tmp_path))
    _, mime = resolve_image_bytes(doc, 0)
    assert mime == "image/jpeg"


def test_resolved_document_keeps_parsed_json():
    b = triangle_asset()
    b.doc["nodes"][0]["weights"] = [0.5]
    doc = resolve_bytes(b.glb())
    assert doc.raw["asset"]["version"] == "2.0"
    assert doc.raw["nodes"][0]["weights"] == [0.5]
