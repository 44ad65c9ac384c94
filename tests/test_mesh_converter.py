import struct

import pytest
import trimesh

from app.services.mesh_converter import (
    MeshConversionError,
    convert_glb_to_stl,
    find_glb_url,
    stl_triangle_count,
)
from app.services.prediction import PredictionOutputError


class TestFindGlbUrl:

    def test_model_file_key(self):
        output = {"model_file": "https://cdn.test/a.glb", "color_video": "https://cdn.test/v.mp4"}
        assert find_glb_url(output) == "https://cdn.test/a.glb"

    def test_any_glb_value(self):
        output = {"video": "https://cdn.test/v.mp4", "mesh": "https://cdn.test/mesh.glb?sig=1"}
        assert find_glb_url(output) == "https://cdn.test/mesh.glb?sig=1"

    def test_glb_in_list(self):
        assert find_glb_url(["https://cdn.test/v.mp4", "https://cdn.test/m.glb"]) == "https://cdn.test/m.glb"

    def test_falls_back_to_normalizer(self):
        assert find_glb_url("https://cdn.test/model") == "https://cdn.test/model"

    def test_nothing_usable(self):
        with pytest.raises(PredictionOutputError):
            find_glb_url({"seed": 3})


class TestConvertGlbToStl:

    def test_box(self):
        glb = trimesh.creation.box().export(file_type="glb")
        result = convert_glb_to_stl(glb)

        assert result.triangle_count == 12
        assert result.vertex_count >= 8
        assert stl_triangle_count(result.stl_bytes) == 12
        assert result.processing_time >= 0

    def test_scene_meshes_are_merged(self):
        scene = trimesh.Scene()
        scene.add_geometry(trimesh.creation.box())
        scene.add_geometry(trimesh.creation.box(), transform=trimesh.transformations.translation_matrix([3, 0, 0]))
        result = convert_glb_to_stl(scene.export(file_type="glb"))
        assert result.triangle_count == 24

    @pytest.mark.parametrize("data", [b"", b"definitely not a binary gltf file"])
    def test_invalid_input(self, data):
        with pytest.raises(MeshConversionError) as exc:
            convert_glb_to_stl(data)
        assert exc.value.retryable is False


class TestStlTriangleCount:

    def test_well_formed(self):
        data = b"\0" * 80 + struct.pack("<I", 2) + b"\0" * 100
        assert stl_triangle_count(data) == 2

    def test_truncated(self):
        data = b"\0" * 80 + struct.pack("<I", 2) + b"\0" * 60
        assert stl_triangle_count(data) is None
        assert stl_triangle_count(b"short") is None
