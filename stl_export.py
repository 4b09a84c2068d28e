"""
Binary STL export

Layout: 80 byte header, uint32 triangle count, then per triangle
12 bytes normal + 36 bytes vertices (float32) + 2 bytes attribute.
"""
import io
import logging
import os

import numpy as np
import stl
from stl import mesh as stl_mesh

logger = logging.getLogger(__name__)

HEADER_SIZE = 80
COUNT_SIZE = 4
RECORD_SIZE = 50
HEADER = b"binary STL - audio terrain".ljust(HEADER_SIZE, b" ")


def stl_filename(display_name):
    """'song.final.mp3' -> 'song.final.stl'"""
    stem = os.path.splitext(os.path.basename(display_name or ""))[0]
    return f"{stem or 'terrain'}.stl"


def build_stl_mesh(positions, faces):
    """numpy-stl mesh with one record per index triangle, unit face normals"""
    faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    data = np.zeros(len(faces), dtype=stl_mesh.Mesh.dtype)
    if len(faces):
        data['vectors'] = np.asarray(positions, dtype=np.float64)[faces]

    result = stl_mesh.Mesh(data, calculate_normals=True)
    # numpy-stl normals are raw cross products; STL readers expect unit length
    result.normals[:] = result.get_unit_normals()
    return result


def export_binary_stl(mesh, name="terrain"):
    """Serialize a mesh (anything with positions and faces) to binary STL bytes"""
    result = build_stl_mesh(mesh.positions, mesh.faces)

    buffer = io.BytesIO()
    result.save(name or "terrain", fh=buffer, mode=stl.Mode.BINARY, update_normals=False)
    payload = buffer.getvalue()

    # numpy-stl stamps the write time into the header, identical meshes must give identical bytes
    payload = HEADER + payload[HEADER_SIZE:]

    logger.debug(f"exported {len(result.data)} triangles ({len(payload)} bytes)")
    return payload


def triangle_count(payload):
    """Triangle count declared in a binary STL payload"""
    if len(payload) < HEADER_SIZE + COUNT_SIZE:
        raise ValueError("payload too short for a binary STL")
    return int(np.frombuffer(payload, dtype='<u4', count=1, offset=HEADER_SIZE)[0])
