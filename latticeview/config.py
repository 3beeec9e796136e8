"""Taichi runtime for the viewer.

The backend comes from the ``runtime`` config group; the environment
overrides it:
    LATTICEVIEW_BACKEND: 'auto', 'cpu', 'gpu', 'cuda' or 'vulkan'
    LATTICEVIEW_DEBUG: '1' to enable Taichi debug mode

'auto' depends on the session. A GGUI window draws through a GPU device,
so a --gui session asks Taichi for ti.gpu, which falls back to the CPU when
no device is usable. A headless session only aggregates one frame per tick
and stays on the CPU.
"""

import logging
import os

import taichi as ti

from latticeview.core.dtypes import DTYPE
from latticeview.params.schema import BACKENDS, RuntimeParams

logger = logging.getLogger(__name__)

BACKEND_ARCHS = {
    "cpu": ti.cpu,
    "gpu": ti.gpu,
    "cuda": ti.cuda,
    "vulkan": ti.vulkan,
}


def get_backend(requested: str = "auto", gui: bool = False) -> str:
    """Concrete backend name for a requested one, after the env override."""
    env = os.environ.get("LATTICEVIEW_BACKEND")
    if env is not None:
        env = env.lower()
        if env not in BACKENDS:
            raise ValueError(f"Invalid LATTICEVIEW_BACKEND: {env}")
        requested = env

    if requested == "auto":
        return "gpu" if gui else "cpu"
    if requested not in BACKEND_ARCHS:
        raise ValueError(f"Unknown backend: {requested}")
    return requested


def init_taichi(
    runtime: RuntimeParams | None = None,
    gui: bool = False,
    backend: str | None = None,
    debug: bool | None = None,
) -> str:
    """Initialize Taichi for a viewer session.

    Args:
        runtime: Config group; defaults to RuntimeParams()
        gui: Whether a GGUI window will be opened
        backend: Explicit backend, skipping resolution (tests pin "cpu")
        debug: Explicit debug flag, skipping config and env

    Returns:
        The backend name Taichi was initialised with
    """
    runtime = runtime or RuntimeParams()
    backend = backend or get_backend(runtime.backend, gui=gui)
    if debug is None:
        debug = runtime.debug or os.environ.get("LATTICEVIEW_DEBUG", "0") == "1"

    arch = BACKEND_ARCHS.get(backend)
    if arch is None:
        raise ValueError(f"Unknown backend: {backend}")

    ti.init(arch=arch, default_fp=DTYPE, debug=debug, offline_cache=runtime.offline_cache)
    logger.info("Taichi on %s (requested %s, gui=%s, debug=%s)", backend, runtime.backend, gui, debug)
    return backend
