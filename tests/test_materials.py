import base64

import pytest

from gltfmodel import LoadOptions, load_bytes
from gltfmodel.errors import (
    E_INVALID_REFERENCE,
    E_TEXTURE_INDEX_OUT_OF_RANGE,
    InvalidReferenceError,
)
from gltfmodel.material import (
    WRAP_CLAMP_TO_EDGE,
    WRAP_REPEAT,
    AlphaMode,
)

from gltf_builder import AssetBuilder, triangle_asset

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


def _textured_asset() -> AssetBuilder:
    b = AssetBuilder()
    view = b.add_view(PNG_MAGIC + b"payload")
    b.add(
        "images",
        {"bufferView": view, "mimeType": "image/png", "name": "albedo"},
    )
    b.add("samplers", {"magFilter": 9729, "wrapS": WRAP_CLAMP_TO_EDGE})
    b.add("textures", {"source": 0, "sampler": 0})
    mat = b.add(
        "materials",
        {
            "name": "Painted",
            "extras": {"tag": "metal"},
            "pbrMetallicRoughness": {
                "baseColorFactor": [0.5, 0.25, 1.0, 1.0],
                "baseColorTexture": {"index": 0, "texCoord": 1},
                "metallicFactor": 0.0,
                "roughnessFactor": 0.75,
            },
            "normalTexture": {"index": 0, "scale": 0.5},
            "occlusionTexture": {"index": 0, "strength": 0.25},
            "emissiveFactor": [1.0, 0.0, 0.0],
            "alphaMode": "MASK",
            "alphaCutoff": 0.3,
            "doubleSided": True,
        },
    )
    mesh = b.add_mesh(b.add_primitive(material=mat))
    b.add_scene([b.add_node(mesh=mesh)])
    return b


def _load(b: AssetBuilder, **opts):
    return load_bytes(b.embedded_json(), LoadOptions(**opts))


def test_material_factors_and_texture_refs():
    model = _load(_textured_asset())
    assert len(model.materials) == 1
    mat = model.materials[0]
    assert mat.base_color_factor == (0.5, 0.25, 1.0, 1.0)
    assert mat.metallic_factor == 0.0
    assert mat.roughness_factor == 0.75
    assert mat.emissive_factor == (1.0, 0.0, 0.0)
    assert mat.alpha_mode is AlphaMode.MASK
    assert mat.alpha_cutoff == pytest.approx(0.3)
    assert mat.double_sided is True
    assert mat.base_color_texture.texture == 0
    assert mat.base_color_texture.tex_coord == 1
    assert mat.normal_texture.factor == 0.5
    assert mat.occlusion_texture.factor == 0.25
    assert mat.metallic_roughness_texture is None
    assert len(mat.textures) == 3


def test_default_material_values():
    b = triangle_asset()
    b.add("materials", {})
    mat = _load(b).materials[0]
    assert mat.base_color_factor == (1.0, 1.0, 1.0, 1.0)
    assert mat.metallic_factor == 1.0
    assert mat.alpha_mode is AlphaMode.OPAQUE
    assert mat.alpha_cutoff == 0.5
    assert mat.textures == []


def test_unknown_alpha_mode_falls_back_to_opaque():
    b = triangle_asset()
    b.add("materials", {"alphaMode": "GLASS"})
    assert _load(b).materials[0].alpha_mode is AlphaMode.OPAQUE


def test_texture_image_and_sampler():
    model = _load(_textured_asset())
    tex = model.textures[0]
    assert tex.image == 0
    assert tex.sampler == 0
    sampler = model.samplers[0]
    assert sampler.mag_filter == 9729
    assert sampler.min_filter is None
    assert sampler.wrap_s == WRAP_CLAMP_TO_EDGE
    assert sampler.wrap_t == WRAP_REPEAT
    image = model.images[0]
    assert image.data == PNG_MAGIC + b"payload"
    assert image.mime_type == "image/png"


def test_texture_index_out_of_range():
    b = triangle_asset()
    pbr = {"baseColorTexture": {"index": 4}}
    b.add("materials", {"pbrMetallicRoughness": pbr})
    with pytest.raises(InvalidReferenceError) as exc:
        _load(b)
    assert exc.value.code == E_TEXTURE_INDEX_OUT_OF_RANGE
    assert exc.value.context["material"] == 0
    assert exc.value.context["texture"] == 4


def test_texture_with_missing_image():
    b = triangle_asset()
    b.add("textures", {"source": 2})
    with pytest.raises(InvalidReferenceError) as exc:
        _load(b)
    assert exc.value.code == E_INVALID_REFERENCE


def test_names_and_extras_are_opt_in():
    plain = _load(_textured_asset())
    assert plain.materials[0].meta is None
    assert plain.images[0].meta is None
    full = _load(_textured_asset(), names=True, extras=True)
    assert full.materials[0].meta.name == "Painted"
    assert full.materials[0].meta.extras == {"tag": "metal"}
    assert full.images[0].meta.name == "albedo"


def test_load_materials_disabled():
    model = _load(_textured_asset(), load_materials=False)
    assert model.materials == []
    assert model.textures == []
    assert model.images == []
    assert model.samplers == []
    assert model.meshes[0].primitives[0].material == 0


def test_load_materials_disabled_skips_image_bytes():
    b = triangle_asset()
    b.add("images", {"uri": "missing.png"})
    # Would fail with E_MISSING_FILE if image bytes were read.
    model = _load(b, load_materials=False)
    assert model.images == []


def test_data_uri_image_bytes():
    b = triangle_asset()
    payload = base64.b64encode(PNG_MAGIC).decode()
    b.add("images", {"uri": f"data:image/png;base64,{payload}"})
    image = _load(b).images[0]
    assert image.data == PNG_MAGIC
    assert image.mime_type == "image/png"
