"""
LatticeView: live and recorded viewer for lattice fluid solvers using Taichi.

Streams D3Q27 lattice snapshots from a solver process and exposes density,
velocity, trilinear sampling and streamlines to rendering collaborators.
"""

__version__ = "0.1.0"
