from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from creative_crop.errors import EncodeError, InvalidCropError
from creative_crop.extract import (
    crop_source, encode_image, extract, extract_async, relative_region, source_rect,
)
from creative_crop.models import Rect, Size, SourceImage, compute_image_bounds
from creative_crop.settings import ExportSettings

from conftest import decode, make_image, png_bytes


@pytest.fixture(scope="module")
def photo():
    return make_image(800, 600)


def source_of(img, ref=b""):
    return SourceImage(image=img, ref=ref or png_bytes(img))


# =============================================================================
# Geometry
# =============================================================================
def test_relative_region_is_measured_against_bounds():
    bounds = Rect(0, 12.5, 100, 75)
    region = Rect(25, 31.25, 50, 37.5)
    assert relative_region(bounds, region) == (0.25, 0.25, 0.5, 0.5)


def test_relative_region_clamps_to_unit_range():
    assert relative_region(Rect(25, 0, 50, 100), Rect(0, -10, 200, 150)) == (0.0, 0.0, 1.0, 1.0)


def test_source_rect_quarter_offset_half_size():
    assert source_rect(Size(800, 600), Rect(0, 0, 100, 100), Rect(25, 25, 50, 50)) == (200, 150, 400, 300)


def test_source_rect_ignores_letterbox_bars():
    bounds = Rect(0, 12.5, 100, 75)
    assert source_rect(Size(800, 600), bounds, Rect(25, 31.25, 50, 37.5)) == (200, 150, 400, 300)


@pytest.mark.parametrize("container", [
    Size(300, 400), Size(333, 777), Size(517, 211), Size(640, 211),
    Size(701, 211), Size(1000, 211), Size(1000, 400), Size(640, 360), Size(800, 600),
])
def test_source_rect_quarter_offset_in_any_container(container):
    bounds = compute_image_bounds(Size(800, 600), container)
    region = Rect(bounds.x + 0.25 * bounds.width, bounds.y + 0.25 * bounds.height,
                  0.5 * bounds.width, 0.5 * bounds.height)
    assert source_rect(Size(800, 600), bounds, region) == (200, 150, 400, 300)


def test_source_rect_floors_fractional_pixels():
    # 1/3 of 100 px is 33.33 px
    assert source_rect(Size(100, 100), Rect(0, 0, 90, 90), Rect(30, 30, 30, 30)) == (33, 33, 33, 33)


def test_source_rect_rejects_empty_crop():
    with pytest.raises(InvalidCropError):
        source_rect(Size(100, 100), Rect(0, 0, 100, 100), Rect(0, 0, 0.0001, 10))


def test_source_rect_rejects_empty_bounds():
    with pytest.raises(InvalidCropError):
        source_rect(Size(100, 100), Rect(0, 0, 0, 0), Rect(0, 0, 10, 10))


# =============================================================================
# Pixels
# =============================================================================
def test_crop_copies_exact_pixels(photo):
    out = crop_source(source_of(photo), Rect(0, 0, 100, 100), Rect(25, 25, 50, 50))
    assert out.size == (400, 300)
    assert out.getpixel((0, 0)) == photo.getpixel((200, 150))
    assert out.getpixel((399, 299)) == photo.getpixel((599, 449))


def test_full_bounds_crop_is_identical(photo):
    bounds = compute_image_bounds(Size(800, 600), Size(1000, 500))
    out = crop_source(source_of(photo), bounds, bounds)
    assert out.size == photo.size
    assert out.tobytes() == photo.tobytes()


def test_full_bounds_png_round_trip_is_lossless(photo):
    bounds = compute_image_bounds(Size(800, 600), Size(300, 700))
    data = extract(source_of(photo), bounds, bounds)
    assert decode(data).convert("RGB").tobytes() == photo.tobytes()


def test_same_inputs_give_same_output(photo):
    src = source_of(photo)
    region = Rect(10, 20, 33.3, 41.7)
    assert extract(src, Rect(0, 0, 100, 100), region) == extract(src, Rect(0, 0, 100, 100), region)


# =============================================================================
# Encoding
# =============================================================================
def test_encode_png_preserves_mode():
    img = make_image(20, 10, "RGBA")
    out = decode(encode_image(img, ExportSettings()))
    assert out.format == "PNG"
    assert out.mode == "RGBA"


def test_encode_cmyk_png_is_converted():
    out = decode(encode_image(make_image(8, 8, "CMYK"), ExportSettings()))
    assert out.mode == "RGBA"


def test_encode_jpeg_converts_alpha():
    img = make_image(32, 16, "RGBA")
    out = decode(encode_image(img, ExportSettings(format="JPEG", jpeg_quality=95)))
    assert out.format == "JPEG"
    assert out.size == (32, 16)


@pytest.mark.parametrize("settings", [
    ExportSettings(format="GIF"),
    ExportSettings(format="JPEG", jpeg_subsampling="3:1:1"),
])
def test_encode_failure_raises_encode_error(settings):
    with pytest.raises(EncodeError):
        encode_image(make_image(4, 4), settings)


# =============================================================================
# References
# =============================================================================
def test_extract_bytes_source_returns_bytes(photo):
    data = extract(source_of(photo), Rect(0, 0, 100, 100), Rect(25, 25, 50, 50))
    assert isinstance(data, bytes)
    assert decode(data).size == (400, 300)


def test_extract_path_source_writes_new_file(tmp_path, photo):
    src_path = tmp_path / "photo.png"
    photo.save(src_path)
    before = src_path.read_bytes()
    src = SourceImage(image=photo, ref=src_path)

    first = extract(src, Rect(0, 0, 100, 100), Rect(25, 25, 50, 50))
    second = extract(src, Rect(0, 0, 100, 100), Rect(0, 0, 50, 50))

    assert first == tmp_path / "photo-crop.png"
    assert second == tmp_path / "photo-crop-01.png"
    assert decode(first.read_bytes()).size == (400, 300)
    assert src_path.read_bytes() == before
    assert not list(tmp_path.glob("*.tmp"))


def test_extract_writes_into_output_dir_with_format_extension(tmp_path, photo):
    src = SourceImage(image=photo, ref=tmp_path / "photo.png")
    out = extract(src, Rect(0, 0, 100, 100), Rect(0, 0, 100, 100),
                  ExportSettings(format="JPEG"), output_dir=tmp_path / "out")
    assert out == tmp_path / "out" / "photo-crop.jpg"
    assert out.is_file()


def test_failed_encode_writes_nothing(tmp_path, photo):
    src = SourceImage(image=photo, ref=tmp_path / "photo.png")
    with pytest.raises(EncodeError):
        extract(src, Rect(0, 0, 100, 100), Rect(0, 0, 50, 50), ExportSettings(format="GIF"))
    assert list(tmp_path.iterdir()) == []


def test_extract_async_resolves_to_reference(photo):
    with ThreadPoolExecutor(max_workers=1) as pool:
        future = extract_async(pool, source_of(photo), Rect(0, 0, 100, 100), Rect(50, 50, 50, 50))
        assert decode(future.result(timeout=10)).size == (400, 300)


def test_extract_async_surfaces_invalid_crop(photo):
    with ThreadPoolExecutor(max_workers=1) as pool:
        future = extract_async(pool, source_of(photo), Rect(0, 0, 100, 100), Rect(0, 0, 0, 0))
        with pytest.raises(InvalidCropError):
            future.result(timeout=10)


def test_path_ref_is_a_path(tmp_path, photo):
    src = SourceImage(image=photo, ref=tmp_path / "a.png")
    assert isinstance(extract(src, Rect(0, 0, 100, 100), Rect(0, 0, 100, 100)), Path)
