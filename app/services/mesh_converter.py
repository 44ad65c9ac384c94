"""
Mesh Converter
GLB (glTF binary) to binary STL conversion for 3D printing.
"""

import io
import logging
import struct
import time
from dataclasses import dataclass
from typing import Any, Optional

import trimesh

from app.core.exceptions import NonRetryableError
from app.services.prediction import extract_output_url, PredictionOutputError

logger = logging.getLogger(__name__)

STL_HEADER_SIZE = 80
STL_TRIANGLE_SIZE = 50


class MeshConversionError(NonRetryableError):
    """GLB could not be turned into a printable STL."""


@dataclass
class ConversionResult:
    stl_bytes: bytes
    vertex_count: int
    triangle_count: int
    processing_time: float


def find_glb_url(output: Any) -> str:
    """
    GLB URL from an image-to-3D prediction output.

    The reconstruction model answers with several files (preview video,
    rendered views); the mesh is under `model_file` or is the `.glb` entry.
    """
    if isinstance(output, dict):
        if isinstance(output.get("model_file"), str):
            return output["model_file"]
        for value in output.values():
            if isinstance(value, str) and ".glb" in value:
                return value
    if isinstance(output, (list, tuple)):
        for item in output:
            if isinstance(item, str) and ".glb" in item:
                return item
    try:
        return extract_output_url(output)
    except PredictionOutputError:
        raise PredictionOutputError("No GLB URL in reconstruction output", output)


def convert_glb_to_stl(glb_bytes: bytes) -> ConversionResult:
    """
    Merge every mesh in the GLB scene (world transforms applied) and export binary STL.

    Raises:
        MeshConversionError: If the file has no triangles or cannot be parsed
    """
    if not glb_bytes:
        raise MeshConversionError("GLB to STL conversion failed: empty file")

    start = time.time()
    try:
        mesh = trimesh.load(io.BytesIO(glb_bytes), file_type="glb", force="mesh")
    except (ValueError, KeyError, IndexError) as e:
        raise MeshConversionError(f"GLB to STL conversion failed: {e}")

    if not isinstance(mesh, trimesh.Trimesh) or len(mesh.faces) == 0:
        raise MeshConversionError("GLB to STL conversion failed: No meshes found in GLB file")

    stl_bytes = mesh.export(file_type="stl")
    if stl_triangle_count(stl_bytes) != len(mesh.faces):
        raise MeshConversionError("GLB to STL conversion failed: malformed STL output")

    result = ConversionResult(
        stl_bytes=stl_bytes,
        vertex_count=len(mesh.vertices),
        triangle_count=len(mesh.faces),
        processing_time=time.time() - start,
    )
    logger.info(
        f"[Mesh] Converted GLB -> STL: {result.triangle_count} triangles, "
        f"{len(stl_bytes) / 1024:.1f} KB in {result.processing_time:.2f}s"
    )
    return result


def stl_triangle_count(stl_bytes: bytes) -> Optional[int]:
    """Triangle count of a well-formed binary STL, None otherwise."""
    if len(stl_bytes) < STL_HEADER_SIZE + 4:
        return None
    (count,) = struct.unpack_from("<I", stl_bytes, STL_HEADER_SIZE)
    if len(stl_bytes) != STL_HEADER_SIZE + 4 + count * STL_TRIANGLE_SIZE:
        return None
    return count
