"""
Material slot lookup tests
"""

import logging

import pytest

from mordant_errors import InvalidInputError
from mordant_materials import (
    MaterialSlot,
    TextureRef,
    find_material_slot_using_texture,
    material_uses_texture,
    resolve_material_binding,
    slot_group,
)


@pytest.fixture
def textures():
    return {
        "skin": TextureRef("skin", 512, 512),
        "skin_copy": TextureRef("skin", 512, 512),
        "cloth": TextureRef("cloth", 256, 256),
        "normal": TextureRef("normal", 512, 512),
    }


class TestTextureRef:

    def test_identity_equality(self, textures):
        assert textures["skin"] != textures["skin_copy"]
        assert textures["skin"].same_asset(textures["skin_copy"])
        assert not textures["skin"].same_asset(TextureRef("skin", 256, 512))
        assert not textures["skin"].same_asset(None)

    def test_invalid_size(self):
        with pytest.raises(InvalidInputError):
            TextureRef("broken", 0, 16)


class TestFindSlot:

    def test_identity_match(self, textures):
        slots = [MaterialSlot("A", {"_MainTex": textures["cloth"]}),
                 MaterialSlot("B", {"_BaseMap": textures["skin"]})]
        assert find_material_slot_using_texture(slots, textures["skin"]) == 1

    def test_asset_fallback(self, textures):
        slots = [MaterialSlot("A", {"_MainTex": textures["cloth"]}),
                 MaterialSlot("B", {"_MainTex": textures["skin_copy"]})]
        assert find_material_slot_using_texture(slots, textures["skin"]) == 1

    def test_identity_beats_earlier_asset_match(self, textures):
        slots = [MaterialSlot("Copy", {"_MainTex": textures["skin_copy"]}),
                 MaterialSlot("Real", {"_MainTex": textures["skin"]})]
        assert find_material_slot_using_texture(slots, textures["skin"]) == 1

    def test_not_found(self, textures):
        slots = [MaterialSlot("A", {"_MainTex": textures["cloth"]})]
        assert find_material_slot_using_texture(slots, textures["skin"]) is None
        assert find_material_slot_using_texture([], textures["skin"]) is None

    def test_empty_slots_skipped(self, textures):
        slots = [None, MaterialSlot("Empty"), MaterialSlot("B", {"_SkinTex": textures["skin"]})]
        assert find_material_slot_using_texture(slots, textures["skin"]) == 2

    def test_any_property_counts(self, textures):
        slots = [MaterialSlot("A", {"_DetailAlbedo": textures["skin"]})]
        assert find_material_slot_using_texture(slots, textures["skin"]) == 0

    def test_none_target(self, textures):
        with pytest.raises(InvalidInputError):
            find_material_slot_using_texture([], None)


class TestSlotHelpers:

    def test_bound_textures_order(self, textures):
        slot = MaterialSlot("A", {
            "_BumpMap": textures["normal"],
            "_BaseMap": textures["skin"],
            "_MainTex": textures["cloth"],
        })
        assert list(slot.bound_textures()) == [textures["cloth"], textures["skin"], textures["normal"]]

    def test_material_uses_texture(self, textures):
        slot = MaterialSlot("A", {"_MainTex": textures["skin_copy"]})
        assert material_uses_texture(slot, textures["skin"])
        assert not material_uses_texture(slot, textures["cloth"])
        assert not material_uses_texture(None, textures["skin"])
        assert not material_uses_texture(slot, None)

    def test_slot_group(self, textures):
        body = MaterialSlot("Body", {"_MainTex": textures["skin"]})
        slots = [body, MaterialSlot("Cloth"), MaterialSlot("Body"), None]
        assert slot_group(slots, 0) == (0, 2)
        assert slot_group(slots, 1) == (1,)
        assert slot_group(slots, 3) == (3,)
        with pytest.raises(InvalidInputError):
            slot_group(slots, 4)


class TestResolveBinding:

    def test_preferred_slot_wins(self, textures):
        slots = [MaterialSlot("A", {"_MainTex": textures["skin"]}),
                 MaterialSlot("B", {"_MainTex": textures["skin"]})]
        binding = resolve_material_binding(slots, "renderer", textures["skin"], preferred_index=1)
        assert binding.material_slot_index == 1
        assert binding.resolved_texture is textures["skin"]
        assert binding.uses_target_texture

    def test_search_when_preferred_misses(self, textures):
        slots = [MaterialSlot("A", {"_MainTex": textures["cloth"]}),
                 MaterialSlot("B", {"_MainTex": textures["skin_copy"]})]
        binding = resolve_material_binding(slots, "renderer", textures["skin"])
        assert binding.material_slot_index == 1
        assert binding.resolved_texture is textures["skin_copy"]
        assert binding.renderer_identity == "renderer"

    def test_fallback_warns(self, textures, caplog):
        slots = [MaterialSlot("A", {"_MainTex": textures["cloth"]})]
        with caplog.at_level(logging.WARNING, logger="mordant_materials"):
            binding = resolve_material_binding(slots, "renderer", textures["skin"], preferred_index=7)
        assert binding.material_slot_index == 0
        assert binding.resolved_texture is None
        assert not binding.uses_target_texture
        assert "No material slot" in caplog.text

    def test_no_slots(self, textures):
        with pytest.raises(InvalidInputError, match="no material slots"):
            resolve_material_binding([], "renderer", textures["skin"])
