"""
Mesh to Web 3D Converter
Turns the terrain mesh into payloads a browser viewer can display
"""

import io
import logging

import numpy as np
import trimesh

from config import DEFAULT_TERRAIN

logger = logging.getLogger(__name__)


def mesh_to_trimesh(mesh):
    """Wrap positions/faces in a trimesh without merging or reordering anything"""
    return trimesh.Trimesh(
        vertices=np.asarray(mesh.positions, dtype=np.float64),
        faces=np.asarray(mesh.faces, dtype=np.int64),
        process=False,
    )


def load_stl_bytes(data):
    """Parse STL bytes back into a trimesh"""
    return trimesh.load(io.BytesIO(data), file_type='stl', force='mesh')


def mesh_to_threejs_json(mesh, rotation=DEFAULT_TERRAIN.rotation):
    """Three.js BufferGeometry style dict, normals are the mesh's own (not recomputed)"""
    positions = np.asarray(mesh.positions, dtype=np.float32)
    index_type = "Uint16Array" if len(positions) <= 65535 else "Uint32Array"

    return {
        "metadata": {
            "version": 4.5,
            "type": "BufferGeometry",
            "generator": "Audio Terrain"
        },
        "data": {
            "attributes": {
                "position": {
                    "itemSize": 3,
                    "type": "Float32Array",
                    "array": positions.ravel().tolist()
                },
                "normal": {
                    "itemSize": 3,
                    "type": "Float32Array",
                    "array": np.asarray(mesh.normals, dtype=np.float32).ravel().tolist()
                }
            },
            "index": {
                "type": index_type,
                "array": np.asarray(mesh.faces).ravel().tolist()
            }
        },
        # read-only display parameters
        "rotation": {"x": rotation[0], "y": rotation[1], "z": rotation[2]}
    }


def get_mesh_info(mesh):
    """Get basic information about the mesh"""
    tm = mesh_to_trimesh(mesh)

    info = {
        "vertices_count": len(tm.vertices),
        "faces_count": len(tm.faces),
        "bounds": tm.bounds.tolist() if len(tm.vertices) else None,
        "volume": float(tm.volume) if len(tm.faces) else 0.0,
        "is_watertight": bool(tm.is_watertight),
    }
    logger.debug(f"mesh info: {info}")
    return info
