"""Unit tests for api/images.py -- product image file handling."""

import io

import pytest

from api.images import ImagePayload, save_product_image


def test_save_writes_file_and_builds_public_url(tmp_path):
    payload = ImagePayload(filename="Photo.JPG", stream=io.BytesIO(b"jpeg-bytes"))
    url, local = save_product_image(payload, 7, str(tmp_path / "images"), "http://shop.local/")
    assert url.startswith("http://shop.local/ProductsImages/7")
    assert url.endswith(".jpg")
    with open(local, "rb") as fh:
        assert fh.read() == b"jpeg-bytes"


def test_two_uploads_never_share_a_file(tmp_path):
    first = save_product_image(ImagePayload("a.png", io.BytesIO(b"1")), 1, str(tmp_path), "http://x")
    second = save_product_image(ImagePayload("a.png", io.BytesIO(b"2")), 1, str(tmp_path), "http://x")
    assert first[1] != second[1]


@pytest.mark.parametrize("filename", ["script.exe", "noext", ""])
def test_rejects_unsupported_extension(tmp_path, filename):
    with pytest.raises(ValueError):
        save_product_image(ImagePayload(filename, io.BytesIO(b"x")), 1, str(tmp_path), "http://x")
    assert list(tmp_path.iterdir()) == []
