# -*- coding: utf-8 -*-
"""
Mordant: Fixing colour across textures and meshes
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: mordant_interfaces.py — Narrow accessor interfaces to the host.

The core never owns scene objects. Textures, meshes and renderers arrive as
opaque handles and are read through three small protocols:

  PixelAccessor     get_pixels(handle) / set_pixels(handle, array)
  GeometryAccessor  get_triangles(mesh, submesh) / get_uvs(mesh, channel)
  MaterialAccessor  get_material_slots(renderer)

Dict-backed adapters are provided for scripting and tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import (
    Any, Dict, Hashable, List, Mapping, Optional, Protocol, Sequence, runtime_checkable,
)

import numpy as np

from mordant_buffers import PixelBuffer
from mordant_errors import InvalidInputError
from mordant_materials import MaterialSlot

__all__ = [
    "PixelAccessor",
    "GeometryAccessor",
    "MaterialAccessor",
    "MeshData",
    "DictPixelStore",
    "DictGeometryStore",
    "DictMaterialStore",
]


# ---------------------------------------------------------------------------
# 1.  Protocols
# ---------------------------------------------------------------------------
@runtime_checkable
class PixelAccessor(Protocol):
    """
    get_pixels(handle) → ``PixelBuffer`` or an ``(H, W, 3|4)`` array
    set_pixels(handle, array) ← ``(H, W, 4)`` float32 array
    """
    def get_pixels(self, handle: Hashable) -> Any: ...
    def set_pixels(self, handle: Hashable, pixels: np.ndarray) -> None: ...


@runtime_checkable
class GeometryAccessor(Protocol):
    """
    get_triangles(mesh, submesh_index) → flat int array, length a multiple of 3
    get_uvs(mesh, channel) → ``(N, 2)`` float array
    submesh_count(mesh) → int
    """
    def get_triangles(self, mesh: Hashable, submesh_index: int) -> np.ndarray: ...
    def get_uvs(self, mesh: Hashable, channel: int) -> np.ndarray: ...
    def submesh_count(self, mesh: Hashable) -> int: ...


@runtime_checkable
class MaterialAccessor(Protocol):
    """get_material_slots(renderer) → slots in renderer order; empty slots are ``None``."""
    def get_material_slots(self, renderer: Hashable) -> Sequence[Optional[MaterialSlot]]: ...


# ---------------------------------------------------------------------------
# 2.  Dict-backed adapters
# ---------------------------------------------------------------------------
class DictPixelStore:
    """Handle → ``PixelBuffer`` mapping. ``set_pixels`` replaces the entry."""
    __slots__ = ("_dict",)

    def __init__(self, buffers: Optional[Dict[Hashable, PixelBuffer]] = None) -> None:
        self._dict: Dict[Hashable, PixelBuffer] = dict(buffers or {})

    def get_pixels(self, handle: Hashable) -> PixelBuffer:
        try:
            return self._dict[handle]
        except KeyError:
            raise InvalidInputError(f"Unknown pixel handle {handle!r}") from None

    def set_pixels(self, handle: Hashable, pixels: np.ndarray) -> None:
        self._dict[handle] = PixelBuffer.from_array(pixels)

    def __contains__(self, handle: Hashable) -> bool:
        return handle in self._dict


@dataclass(slots=True)
class MeshData:
    """Index buffers per submesh plus UV sets per channel."""
    submeshes: List[np.ndarray] = field(default_factory=list)
    uvs:       Dict[int, np.ndarray] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.submeshes = [np.asarray(s, dtype=np.int64).reshape(-1) for s in self.submeshes]
        self.uvs = {int(k): np.asarray(v, dtype=np.float64) for k, v in self.uvs.items()}


class DictGeometryStore:
    """Mesh handle → ``MeshData``."""
    __slots__ = ("_dict",)

    def __init__(self, meshes: Optional[Mapping[Hashable, MeshData]] = None) -> None:
        self._dict: Dict[Hashable, MeshData] = dict(meshes or {})

    def _mesh(self, mesh: Hashable) -> MeshData:
        try:
            return self._dict[mesh]
        except KeyError:
            raise InvalidInputError(f"Unknown mesh {mesh!r}") from None

    def get_triangles(self, mesh: Hashable, submesh_index: int) -> np.ndarray:
        data = self._mesh(mesh)
        if not 0 <= submesh_index < len(data.submeshes):
            raise InvalidInputError(
                f"Mesh {mesh!r} has {len(data.submeshes)} submeshes, asked for {submesh_index}"
            )
        return data.submeshes[submesh_index]

    def get_uvs(self, mesh: Hashable, channel: int) -> np.ndarray:
        data = self._mesh(mesh)
        if channel not in data.uvs:
            raise InvalidInputError(f"Mesh {mesh!r} has no UV channel {channel}")
        return data.uvs[channel]

    def submesh_count(self, mesh: Hashable) -> int:
        return len(self._mesh(mesh).submeshes)


class DictMaterialStore:
    """Renderer handle → list of slots."""
    __slots__ = ("_dict",)

    def __init__(self, renderers: Optional[Mapping[Hashable, Sequence[Optional[MaterialSlot]]]] = None) -> None:
        self._dict: Dict[Hashable, List[Optional[MaterialSlot]]] = {
            k: list(v) for k, v in (renderers or {}).items()
        }

    def get_material_slots(self, renderer: Hashable) -> Sequence[Optional[MaterialSlot]]:
        try:
            return tuple(self._dict[renderer])
        except KeyError:
            raise InvalidInputError(f"Unknown renderer {renderer!r}") from None
