import asyncio
from pathlib import Path

import numpy as np
import pytest

from textool.backend import NumpyBackend, ThreadedBackend
from textool.graph import RenderError
from textool.library import KERNELS, TYPES
from textool.library.textures import blank, fit
from textool.registry import builtin_registry

SIZE = (4, 6)


def _inputs(type_id: str, **overrides) -> dict:
    descriptor = builtin_registry().get(type_id)
    values = descriptor.defaults()
    values.update(overrides)
    return values


def test_every_descriptor_has_a_kernel() -> None:
    assert {descriptor.compute for descriptor in TYPES} <= set(KERNELS)


@pytest.mark.parametrize("descriptor", TYPES, ids=lambda d: d.id)
def test_kernels_render_rgba_with_defaults(descriptor) -> None:
    out = KERNELS[descriptor.compute](descriptor.defaults(), SIZE)

    assert out.shape == (*SIZE, 4)
    assert out.dtype == np.float32
    assert float(out.min()) >= 0.0
    assert float(out.max()) <= 1.0


def test_uniform_color_accepts_rgb() -> None:
    out = KERNELS["uniform_color"](_inputs("uniform-color", color=[0.2, 0.4, 0.6]), SIZE)

    assert np.allclose(out[0, 0], [0.2, 0.4, 0.6, 1.0])


def test_checkerboard_alternates_cells() -> None:
    out = KERNELS["checkerboard"](_inputs("checkerboard", cells=2), (4, 4))

    assert np.allclose(out[0, 0], [0, 0, 0, 1])
    assert np.allclose(out[0, 3], [1, 1, 1, 1])
    assert np.allclose(out[3, 3], [0, 0, 0, 1])


def test_value_noise_is_deterministic_per_seed() -> None:
    first = KERNELS["value_noise"](_inputs("value-noise", seed=3), (16, 16))
    again = KERNELS["value_noise"](_inputs("value-noise", seed=3), (16, 16))
    other = KERNELS["value_noise"](_inputs("value-noise", seed=4), (16, 16))

    assert np.array_equal(first, again)
    assert not np.array_equal(first, other)


def test_invert_and_threshold_use_source_texture() -> None:
    source = blank(SIZE, [0.25, 0.25, 0.25, 0.5])

    inverted = KERNELS["invert"]({"source": source}, SIZE)
    assert np.allclose(inverted[0, 0], [0.75, 0.75, 0.75, 0.5])

    high = KERNELS["threshold"]({"source": source, "level": 0.5}, SIZE)
    low = KERNELS["threshold"]({"source": source, "level": 0.1}, SIZE)
    assert np.allclose(high[0, 0], [0, 0, 0, 0.5])
    assert np.allclose(low[0, 0], [1, 1, 1, 0.5])


def test_missing_texture_reads_as_transparent() -> None:
    out = KERNELS["invert"]({"source": None}, SIZE)

    assert np.allclose(out[..., :3], 1.0)
    assert np.allclose(out[..., 3], 0.0)


def test_levels_rejects_inverted_range() -> None:
    with pytest.raises(RenderError):
        KERNELS["levels"](_inputs("levels", black=0.8, white=0.2), SIZE)


def test_blend_modes() -> None:
    a = blank(SIZE, [0.5, 0.5, 0.5, 1.0])
    b = blank(SIZE, [0.5, 0.5, 0.5, 1.0])

    multiplied = KERNELS["blend"]({"a": a, "b": b, "amount": 1.0, "mode": "multiply"}, SIZE)
    screened = KERNELS["blend"]({"a": a, "b": b, "amount": 1.0, "mode": "screen"}, SIZE)

    assert np.allclose(multiplied[0, 0, :3], 0.25)
    assert np.allclose(screened[0, 0, :3], 0.75)
    with pytest.raises(RenderError):
        KERNELS["blend"]({"a": a, "b": b, "amount": 1.0, "mode": "dodge"}, SIZE)


def test_mask_scales_alpha_by_luminance() -> None:
    source = blank(SIZE, [1.0, 0.0, 0.0, 1.0])
    matte = blank(SIZE, [0.0, 0.0, 0.0, 1.0])

    out = KERNELS["mask"]({"source": source, "mask": matte}, SIZE)

    assert np.allclose(out[..., 3], 0.0)
    assert np.allclose(out[..., 0], 1.0)


def test_fit_resamples_nearest() -> None:
    small = np.arange(2 * 2 * 4, dtype=np.float32).reshape(2, 2, 4)

    big = fit(small, (4, 4))

    assert big.shape == (4, 4, 4)
    assert np.array_equal(big[0, 0], small[0, 0])
    assert np.array_equal(big[3, 3], small[1, 1])


def test_backend_renders_into_target_size_and_freezes_output() -> None:
    backend = NumpyBackend(size=8)
    descriptor = builtin_registry().get("uniform-color")
    target = backend.allocate_target(width=5, height=3)

    out = backend.compute(descriptor, descriptor.defaults(), target)

    assert out.shape == (3, 5, 4)
    assert not out.flags.writeable
    assert backend.live_targets == [target]

    backend.release(target)
    assert target.released
    assert backend.live_targets == []
    with pytest.raises(RenderError):
        backend.compute(descriptor, descriptor.defaults(), target)


def test_backend_reports_missing_kernel() -> None:
    backend = NumpyBackend(size=4, kernels={})
    descriptor = builtin_registry().get("invert")

    with pytest.raises(RenderError):
        backend.compute(descriptor, descriptor.defaults(), None)


def test_threaded_backend_computes_off_loop() -> None:
    inner = NumpyBackend(size=4)
    backend = ThreadedBackend(inner)
    descriptor = builtin_registry().get("checkerboard")

    out = asyncio.run(backend.compute(descriptor, descriptor.defaults(), None))

    assert out.shape == (4, 4, 4)


def test_image_loads_file_as_rgba_texture(tmp_path: Path) -> None:
    pil_image = pytest.importorskip("PIL.Image")
    path = tmp_path / "swatch.png"
    pixels = np.zeros((2, 2, 3), dtype=np.uint8)
    pixels[0, 0] = [255, 0, 0]
    pixels[1, 1] = [0, 0, 255]
    pil_image.fromarray(pixels).save(path)

    out = KERNELS["image"]({"path": str(path)}, (4, 4))

    assert out.shape == (4, 4, 4)
    assert np.allclose(out[0, 0], [1, 0, 0, 1])
    assert np.allclose(out[3, 3], [0, 0, 1, 1])
    assert np.allclose(out[0, 3], [0, 0, 0, 1])


def test_image_without_path_is_transparent_and_bad_files_fail(tmp_path: Path) -> None:
    empty = KERNELS["image"](_inputs("image"), SIZE)
    assert np.allclose(empty, 0.0)

    broken = tmp_path / "broken.png"
    broken.write_text("not an image", encoding="utf-8")
    with pytest.raises(RenderError):
        KERNELS["image"]({"path": str(broken)}, SIZE)
    with pytest.raises(RenderError):
        KERNELS["image"]({"path": str(tmp_path / "missing.png")}, SIZE)
