from meshhologram.pre.mesh import TriMesh

__all__ = ["TriMesh"]
