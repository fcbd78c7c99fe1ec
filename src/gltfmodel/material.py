# ===-----------------------------------------------------------------------===#
# Distributed under the 3-Clause BSD License. See accompanying file LICENSE or
# copy at https://opensource.org/licenses/BSD-3-Clause.
# SPDX-License-Identifier: BSD-3-Clause
# ===-----------------------------------------------------------------------===#

"""PBR metallic-roughness material, texture, sampler and image translation.

Images are not decoded: an :class:`Image` carries the encoded bytes and
mime type for whatever image decoder the embedding application uses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from .container import ResolvedDocument, resolve_image_bytes
from .errors import E_TEXTURE_INDEX_OUT_OF_RANGE, reference_error
from .logging import get_logger
from .meta import Meta, make_meta

__all__ = [
    "AlphaMode",
    "Sampler",
    "Image",
    "Texture",
    "TextureRef",
    "Material",
    "MaterialTranslator",
    "WRAP_REPEAT",
    "WRAP_CLAMP_TO_EDGE",
    "WRAP_MIRRORED_REPEAT",
]

WRAP_REPEAT = 10497
WRAP_CLAMP_TO_EDGE = 33071
WRAP_MIRRORED_REPEAT = 33648


class AlphaMode(Enum):
    OPAQUE = "OPAQUE"
    MASK = "MASK"
    BLEND = "BLEND"


@dataclass(slots=True)
class Sampler:
    mag_filter: Optional[int] = None
    min_filter: Optional[int] = None
    wrap_s: int = WRAP_REPEAT
    wrap_t: int = WRAP_REPEAT
    meta: Optional[Meta] = None


@dataclass(slots=True)
class Image:
    data: bytes
    mime_type: Optional[str] = None
    meta: Optional[Meta] = None


@dataclass(slots=True)
class Texture:
    image: Optional[int]
    sampler: Optional[int] = None
    meta: Optional[Meta] = None


@dataclass(slots=True)
class TextureRef:
    texture: int
    tex_coord: int = 0
    # normalTexture.scale / occlusionTexture.strength, 1.0 otherwise
    factor: float = 1.0


@dataclass(slots=True)
class Material:
    base_color_factor: Tuple[float, float, float, float] = (1.0, 1.0, 1.0, 1.0)
    base_color_texture: Optional[TextureRef] = None
    metallic_factor: float = 1.0
    roughness_factor: float = 1.0
    metallic_roughness_texture: Optional[TextureRef] = None
    normal_texture: Optional[TextureRef] = None
    occlusion_texture: Optional[TextureRef] = None
    emissive_factor: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    emissive_texture: Optional[TextureRef] = None
    alpha_mode: AlphaMode = AlphaMode.OPAQUE
    alpha_cutoff: float = 0.5
    double_sided: bool = False
    meta: Optional[Meta] = None

    @property
    def textures(self) -> List[TextureRef]:
        refs = (
            self.base_color_texture,
            self.metallic_roughness_texture,
            self.normal_texture,
            self.occlusion_texture,
            self.emissive_texture,
        )
        return [r for r in refs if r is not None]


def material_uses_normal_map(gltf, material_index: Optional[int]) -> bool:
    """True when the source material references a normal texture."""
    if material_index is None or not (
        0 <= material_index < len(gltf.materials)
    ):
        return False
    return gltf.materials[material_index].normalTexture is not None


@dataclass(slots=True)
class MaterialTranslator:
    document: ResolvedDocument
    names: bool = False
    extras: bool = False
    _texture_count: int = field(init=False, default=0)

    def __post_init__(self) -> None:
        self._texture_count = len(self.document.gltf.textures)

    def _meta(self, source) -> Optional[Meta]:
        return make_meta(source, names=self.names, extras=self.extras)

    def _ref(
        self, info, material_index: int, slot: str, factor_attr: str = ""
    ) -> Optional[TextureRef]:
        if info is None or info.index is None:
            return None
        if not 0 <= info.index < self._texture_count:
            raise reference_error(
                f"{slot} references texture {info.index} of"
                f" {self._texture_count}",
                code=E_TEXTURE_INDEX_OUT_OF_RANGE,
                material=material_index,
                texture=info.index,
                slot=slot,
            )
        factor = getattr(info, factor_attr, None) if factor_attr else None
        return TextureRef(
            texture=int(info.index),
            tex_coord=int(info.texCoord or 0),
            factor=float(factor) if factor is not None else 1.0,
        )

    def translate_material(self, index: int) -> Material:
        mat = self.document.gltf.materials[index]
        pbr = mat.pbrMetallicRoughness
        try:
            alpha_mode = AlphaMode(mat.alphaMode or "OPAQUE")
        except ValueError:
            get_logger().warning(
                "material %d: unknown alphaMode %r, using OPAQUE",
                index,
                mat.alphaMode,
            )
            alpha_mode = AlphaMode.OPAQUE
        out = Material(
            normal_texture=self._ref(
                mat.normalTexture, index, "normalTexture", "scale"
            ),
            occlusion_texture=self._ref(
                mat.occlusionTexture, index, "occlusionTexture", "strength"
            ),
            emissive_texture=self._ref(
                mat.emissiveTexture, index, "emissiveTexture"
            ),
            alpha_mode=alpha_mode,
            alpha_cutoff=(
                float(mat.alphaCutoff) if mat.alphaCutoff is not None else 0.5
            ),
            double_sided=bool(mat.doubleSided),
            meta=self._meta(mat),
        )
        if mat.emissiveFactor is not None:
            out.emissive_factor = tuple(float(v) for v in mat.emissiveFactor)
        if pbr is not None:
            if pbr.baseColorFactor is not None:
                out.base_color_factor = tuple(
                    float(v) for v in pbr.baseColorFactor
                )
            if pbr.metallicFactor is not None:
                out.metallic_factor = float(pbr.metallicFactor)
            if pbr.roughnessFactor is not None:
                out.roughness_factor = float(pbr.roughnessFactor)
            out.base_color_texture = self._ref(
                pbr.baseColorTexture, index, "baseColorTexture"
            )
            out.metallic_roughness_texture = self._ref(
                pbr.metallicRoughnessTexture,
                index,
                "metallicRoughnessTexture",
            )
        return out

    def translate_texture(self, index: int) -> Texture:
        gltf = self.document.gltf
        tex = gltf.textures[index]
        if tex.source is not None and not 0 <= tex.source < len(gltf.images):
            raise reference_error(
                f"image {tex.source} does not exist",
                texture=index,
                image=tex.source,
            )
        if tex.sampler is not None and not (
            0 <= tex.sampler < len(gltf.samplers)
        ):
            raise reference_error(
                f"sampler {tex.sampler} does not exist",
                texture=index,
                sampler=tex.sampler,
            )
        return Texture(
            image=tex.source, sampler=tex.sampler, meta=self._meta(tex)
        )

    def translate_sampler(self, index: int) -> Sampler:
        s = self.document.gltf.samplers[index]
        return Sampler(
            mag_filter=s.magFilter,
            min_filter=s.minFilter,
            wrap_s=s.wrapS if s.wrapS is not None else WRAP_REPEAT,
            wrap_t=s.wrapT if s.wrapT is not None else WRAP_REPEAT,
            meta=self._meta(s),
        )

    def translate_image(self, index: int) -> Image:
        data, mime = resolve_image_bytes(self.document, index)
        return Image(
            data=data,
            mime_type=mime,
            meta=self._meta(self.document.gltf.images[index]),
        )
