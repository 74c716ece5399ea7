# -*- coding: utf-8 -*-
"""
Mordant: Fixing colour across textures and meshes
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: mordant_materials.py — Which material slot binds a given texture.

Host textures are opaque handles (``TextureRef``) compared by identity.
Projects often carry duplicate instances of the same logical asset, so a
second pass accepts a texture with equal (name, width, height).

Lookup order for a single slot follows ``TEXTURE_PROPERTY_NAMES``, the
usual colour-map property names across render pipelines, then any other
bound texture.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Final, Hashable, Iterator, Mapping, Optional, Sequence, Tuple

from mordant_errors import InvalidInputError

logger = logging.getLogger(__name__)

__all__ = [
    "TEXTURE_PROPERTY_NAMES",
    "TextureRef",
    "MaterialSlot",
    "MaterialBinding",
    "material_uses_texture",
    "find_material_slot_using_texture",
    "slot_group",
    "resolve_material_binding",
]

TEXTURE_PROPERTY_NAMES: Final[Tuple[str, ...]] = (
    "_MainTex", "_BaseMap", "_BaseColorMap", "_AlbedoMap", "_DiffuseMap",
    "_ColorMap", "_Tex", "_Texture", "_AlbedoTexture", "_MainTexture",
    "_BaseTexture", "_SkinTex", "_ClothTex", "_FaceTex", "_BodyTex", "_EyeTex",
)


# ---------------------------------------------------------------------------
# 1.  Handles
# ---------------------------------------------------------------------------
@dataclass(slots=True, frozen=True, eq=False)
class TextureRef:
    """Opaque texture handle. ``==`` is identity; see ``same_asset``."""
    name:   str
    width:  int
    height: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise InvalidInputError(
                f"Texture '{self.name}' has invalid size {self.width}x{self.height}"
            )

    def same_asset(self, other: Optional["TextureRef"]) -> bool:
        """Fallback match on (name, width, height)."""
        if other is None:
            return False
        return (self.name == other.name
                and self.width == other.width
                and self.height == other.height)


@dataclass(slots=True, frozen=True, eq=False)
class MaterialSlot:
    """A material bound at one renderer slot: its name and texture properties."""
    name:     str
    textures: Mapping[str, TextureRef] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "textures", dict(self.textures))

    def bound_textures(self) -> Iterator[TextureRef]:
        """Known colour-map properties first, then everything else in binding order."""
        seen = set()
        for prop in TEXTURE_PROPERTY_NAMES:
            tex = self.textures.get(prop)
            if tex is not None:
                seen.add(prop)
                yield tex
        for prop, tex in self.textures.items():
            if prop not in seen and tex is not None:
                yield tex


@dataclass(slots=True, frozen=True)
class MaterialBinding:
    """Result of resolving a texture against a renderer's slots."""
    renderer_identity:   Hashable
    material_slot_index: int
    resolved_texture:    Optional[TextureRef] = None
    uses_target_texture: bool = False


# ---------------------------------------------------------------------------
# 2.  Lookup
# ---------------------------------------------------------------------------
def _identity_match(slot: MaterialSlot, texture: TextureRef) -> Optional[TextureRef]:
    for tex in slot.bound_textures():
        if tex is texture:
            return tex
    return None


def _asset_match(slot: MaterialSlot, texture: TextureRef) -> Optional[TextureRef]:
    for tex in slot.bound_textures():
        if tex.same_asset(texture):
            return tex
    return None


def _matching_texture(slot: Optional[MaterialSlot], texture: TextureRef) -> Optional[TextureRef]:
    if slot is None:
        return None
    hit = _identity_match(slot, texture)
    return hit if hit is not None else _asset_match(slot, texture)


def material_uses_texture(slot: Optional[MaterialSlot], texture: Optional[TextureRef]) -> bool:
    """True if *slot* binds *texture* itself or an instance of the same asset."""
    if texture is None:
        return False
    return _matching_texture(slot, texture) is not None


def find_material_slot_using_texture(materials: Sequence[Optional[MaterialSlot]],
                                     target_texture: TextureRef) -> Optional[int]:
    """
    Index of the first slot bound to *target_texture*, or ``None``.

    All slots are checked for an identical handle before any slot is
    checked by (name, width, height). Empty slots are skipped.
    """
    if target_texture is None:
        raise InvalidInputError("target_texture must not be None")

    for i, slot in enumerate(materials):
        if slot is not None and _identity_match(slot, target_texture) is not None:
            return i

    for i, slot in enumerate(materials):
        if slot is not None and _asset_match(slot, target_texture) is not None:
            logger.debug("Slot %d matched texture '%s' by name and size", i, target_texture.name)
            return i

    return None


def slot_group(materials: Sequence[Optional[MaterialSlot]], index: int) -> Tuple[int, ...]:
    """Indices of every slot sharing the material name of slot *index*."""
    if not 0 <= index < len(materials):
        raise InvalidInputError(f"Slot index {index} out of range for {len(materials)} slots")
    anchor = materials[index]
    if anchor is None:
        return (index,)
    return tuple(i for i, slot in enumerate(materials)
                 if slot is not None and slot.name == anchor.name)


def resolve_material_binding(materials: Sequence[Optional[MaterialSlot]],
                             renderer_identity: Hashable,
                             texture: TextureRef,
                             preferred_index: int = 0) -> MaterialBinding:
    """
    Pick the slot to analyse for *texture*.

    The preferred slot wins if it binds the texture. Otherwise every slot is
    searched. When nothing matches, the preferred index (clamped to the slot
    range) is returned with ``uses_target_texture=False``.
    """
    if not materials:
        raise InvalidInputError(f"Renderer {renderer_identity!r} has no material slots")
    if texture is None:
        raise InvalidInputError("texture must not be None")

    clamped = min(max(int(preferred_index), 0), len(materials) - 1)

    hit = _matching_texture(materials[clamped], texture)
    if hit is not None:
        return MaterialBinding(renderer_identity, clamped, hit, True)

    found = find_material_slot_using_texture(materials, texture)
    if found is not None:
        logger.debug("Texture '%s' not on slot %d, using slot %d", texture.name, clamped, found)
        return MaterialBinding(renderer_identity, found,
                               _matching_texture(materials[found], texture), True)

    logger.warning("No material slot on %r uses texture '%s'; falling back to slot %d",
                   renderer_identity, texture.name, clamped)
    return MaterialBinding(renderer_identity, clamped, None, False)
