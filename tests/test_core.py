"""Tests for core modules: dtypes, geometry, errors, config."""

import math

import numpy as np
import pytest
import taichi as ti

from latticeview.config import get_backend
from latticeview.core import (
    DTYPE,
    EMPTY_DIMENSIONS,
    NUM_DIRECTIONS,
    VELOCITY_SET,
    GridDimensions,
    InvalidArgumentError,
    LatticeRangeError,
    LatticeViewError,
    PlaybackFormatError,
    exp_lerp,
    grid_index,
    node_coordinates,
    ti_exp_lerp,
)
from latticeview.params.schema import RuntimeParams, ValidationError


class TestVelocitySet:
    """Tests for the D3Q27 direction table."""

    def test_dtype_is_f32(self):
        """DTYPE should be ti.f32."""
        assert DTYPE == ti.f32

    def test_shape(self):
        """27 directions of 3 components."""
        assert NUM_DIRECTIONS == 27
        assert VELOCITY_SET.shape == (27, 3)

    def test_rest_vector_first(self):
        """Direction 0 is the rest vector."""
        np.testing.assert_array_equal(VELOCITY_SET[0], [0, 0, 0])

    def test_all_directions_unique(self):
        """Every combination of -1, 0, 1 appears exactly once."""
        as_tuples = {tuple(v) for v in VELOCITY_SET.tolist()}
        assert len(as_tuples) == 27
        assert all(set(v) <= {-1, 0, 1} for v in as_tuples)

    def test_grouped_by_norm(self):
        """Faces, then edges, then corners."""
        norms = (VELOCITY_SET**2).sum(axis=1)
        np.testing.assert_array_equal(norms[1:7], 1)
        np.testing.assert_array_equal(norms[7:19], 2)
        np.testing.assert_array_equal(norms[19:27], 3)

    def test_directions_sum_to_zero(self):
        """Opposite directions cancel."""
        np.testing.assert_array_equal(VELOCITY_SET.sum(axis=0), [0, 0, 0])

    def test_read_only(self):
        """The table cannot be mutated."""
        with pytest.raises(ValueError):
            VELOCITY_SET[0, 0] = 5


class TestGridDimensions:
    """Tests for GridDimensions."""

    def test_node_count(self):
        """node_count is the product of the extents."""
        dims = GridDimensions(4, 3, 2)
        assert dims.node_count == 24
        assert dims.shape == (4, 3, 2)
        assert not dims.is_empty

    def test_empty(self):
        """A zero extent gives an empty lattice."""
        assert EMPTY_DIMENSIONS.is_empty
        assert GridDimensions(5, 0, 5).node_count == 0

    @pytest.mark.parametrize("extent", [-1, 256, 1000])
    def test_rejects_out_of_byte_range(self, extent):
        """Extents must fit in one unsigned byte."""
        with pytest.raises(InvalidArgumentError, match="width"):
            GridDimensions(extent, 1, 1)

    def test_rejects_non_integer(self):
        """Floats and bools are rejected."""
        with pytest.raises(InvalidArgumentError):
            GridDimensions(2.5, 1, 1)
        with pytest.raises(InvalidArgumentError):
            GridDimensions(True, 1, 1)

    def test_accepts_max_extent(self):
        """255 is the largest extent."""
        assert GridDimensions(255, 1, 1).width == 255

    def test_contains(self):
        """Continuous positions inside [0, extent-1] are contained."""
        dims = GridDimensions(4, 3, 2)
        assert dims.contains(0.0, 0.0, 0.0)
        assert dims.contains(3.0, 2.0, 1.0)
        assert dims.contains(1.5, 0.5, 0.25)
        assert not dims.contains(3.01, 0.0, 0.0)
        assert not dims.contains(-0.01, 0.0, 0.0)
        assert not dims.contains(0.0, 0.0, 1.5)

    def test_contains_nan(self):
        """NaN is never inside the lattice."""
        assert not GridDimensions(4, 4, 4).contains(math.nan, 1.0, 1.0)

    def test_frozen(self):
        """Dimensions are immutable."""
        dims = GridDimensions(2, 2, 2)
        with pytest.raises(AttributeError):
            dims.width = 3


class TestIndexing:
    """Tests for the flat node index layout."""

    def test_formula_uses_height_for_y(self):
        """index = x + y*height + z*width*height."""
        assert grid_index(1, 2, 3, width=4, height=5) == 1 + 2 * 5 + 3 * 20

    def test_square_lattice_is_row_major(self):
        """With width == height the layout is plain x-fastest order."""
        dims = GridDimensions(3, 3, 2)
        seen = [dims.index(x, y, z) for z in range(2) for y in range(3) for x in range(3)]
        assert seen == list(range(18))

    def test_node_coordinates_square(self):
        """Every node appears once with its own index."""
        dims = GridDimensions(3, 3, 3)
        coords, indices = node_coordinates(dims)
        assert coords.shape == (27, 3)
        np.testing.assert_array_equal(np.sort(indices), np.arange(27))
        np.testing.assert_array_equal(coords[1], [1, 0, 0])

    def test_node_coordinates_drops_out_of_storage(self):
        """Nodes whose index exceeds node_count are omitted."""
        dims = GridDimensions(2, 4, 1)  # index = x + 4y, max 13 >= 8
        coords, indices = node_coordinates(dims)
        assert np.all(indices < dims.node_count)
        assert len(coords) < 8


class TestExpLerp:
    """Tests for the saturating ease."""

    def test_zero(self):
        """exp_lerp(0) == 0."""
        assert exp_lerp(0.0) == 0.0

    def test_one(self):
        """exp_lerp(1) is just below 1."""
        assert exp_lerp(1.0) == pytest.approx(1.0 - 2.0**-10)

    def test_saturates_above_one(self):
        """t > 1 gives exactly 1."""
        assert exp_lerp(1.5) == 1.0

    def test_monotonic(self):
        """Increasing on [0, 1]."""
        values = [exp_lerp(t) for t in np.linspace(0.0, 1.0, 11)]
        assert all(b > a for a, b in zip(values, values[1:]))

    def test_kernel_matches_python(self):
        """ti_exp_lerp agrees with exp_lerp within f32 precision."""
        ts = ti.field(DTYPE, shape=4)
        out = ti.field(DTYPE, shape=4)
        ts.from_numpy(np.array([0.0, 0.25, 1.0, 2.0], dtype=np.float32))

        @ti.kernel
        def ease():
            for i in ts:
                out[i] = ti_exp_lerp(ts[i])

        ease()
        expected = [exp_lerp(t) for t in [0.0, 0.25, 1.0, 2.0]]
        np.testing.assert_allclose(out.to_numpy(), expected, rtol=1e-6)


class TestErrors:
    """Tests for the exception hierarchy."""

    def test_builtin_bases(self):
        """Argument errors are catchable as builtins."""
        assert issubclass(InvalidArgumentError, ValueError)
        assert issubclass(LatticeRangeError, IndexError)
        assert issubclass(InvalidArgumentError, LatticeViewError)

    def test_playback_error_line(self):
        """Line number is kept and prefixed to the message."""
        err = PlaybackFormatError("bad token", line=7)
        assert err.line == 7
        assert str(err) == "line 7: bad token"


class TestConfig:
    """Tests for backend selection."""

    def test_env_backend(self, monkeypatch):
        """LATTICEVIEW_BACKEND selects the backend."""
        monkeypatch.setenv("LATTICEVIEW_BACKEND", "cpu")
        assert get_backend() == "cpu"

    def test_invalid_env_backend(self, monkeypatch):
        """Unknown backend names are rejected."""
        monkeypatch.setenv("LATTICEVIEW_BACKEND", "tpu")
        with pytest.raises(ValueError, match="LATTICEVIEW_BACKEND"):
            get_backend()

    def test_env_overrides_config(self, monkeypatch):
        """The environment wins over the configured backend."""
        monkeypatch.setenv("LATTICEVIEW_BACKEND", "cpu")
        assert get_backend("vulkan", gui=True) == "cpu"

    def test_auto_follows_session(self, monkeypatch):
        """'auto' is the GPU for a window and the CPU when headless."""
        monkeypatch.delenv("LATTICEVIEW_BACKEND", raising=False)
        assert get_backend("auto", gui=True) == "gpu"
        assert get_backend("auto", gui=False) == "cpu"

    def test_configured_backend(self, monkeypatch):
        """An explicit config value is used as is."""
        monkeypatch.delenv("LATTICEVIEW_BACKEND", raising=False)
        assert get_backend("vulkan") == "vulkan"

    def test_runtime_params_validate_backend(self):
        """Unknown backends are rejected when the config is built."""
        with pytest.raises(ValidationError, match="backend"):
            RuntimeParams(backend="tpu")
