"""Type definitions for LatticeView.

The solver streams little-endian IEEE-754 singles, so fields are stored as
ti.f32 to keep decoded values bit-exact from the wire to the store.
"""

import numpy as np
import taichi as ti

# Default floating-point type for all fields and computations
DTYPE = ti.f32

# numpy counterpart of DTYPE, explicit little-endian for wire decoding
WIRE_FLOAT = np.dtype("<f4")
