# ===-----------------------------------------------------------------------===#
# Distributed under the 3-Clause BSD License. See accompanying file LICENSE or
# copy at https://opensource.org/licenses/BSD-3-Clause.
# SPDX-License-Identifier: BSD-3-Clause
# ===-----------------------------------------------------------------------===#

"""gltfmodel package

Loads glTF 2.0 assets (``.gltf`` with sidecar files, ``.glb`` or embedded
data URIs) into a flattened in-memory :class:`Model`: meshes with typed
numpy attribute arrays, PBR materials, textures with their encoded image
bytes, the node hierarchy, skins, cameras and animation clips.

Most callers only need :func:`load` or :func:`load_bytes`; every failure is
a :class:`LoadError` carrying an error code and the offending entity.
"""

from ._version import __version__  # noqa: F401
from .api import build_model, load, load_bytes
from .errors import LoadError
from .model import Model
from .options import LoadOptions, load_options

__all__ = [
    "__version__",
    "load",
    "load_bytes",
    "build_model",
    "LoadError",
    "LoadOptions",
    "load_options",
    "Model",
]
