from __future__ import annotations

import base64
from io import BytesIO

import pytest
from PIL import Image
from werkzeug.datastructures import FileStorage, MultiDict

from ad_legalcheck.errors import InputValidationError
from ad_legalcheck.inputs import (
    build_check_request,
    collect_images,
    image_bytes_to_data_url,
    parse_reference_urls,
)

from conftest import png_bytes


def _file(data: bytes, name: str) -> FileStorage:
    return FileStorage(stream=BytesIO(data), filename=name)


def test_parse_reference_urls_dedupes_and_keeps_order() -> None:
    urls = parse_reference_urls("https://a.example\nhttp://b.example, https://a.example\n\n")
    assert urls == ("https://a.example", "http://b.example")


def test_parse_reference_urls_requires_scheme() -> None:
    with pytest.raises(InputValidationError):
        parse_reference_urls("example.com")


def test_parse_reference_urls_limit() -> None:
    many = [f"https://e{i}.example" for i in range(21)]
    with pytest.raises(InputValidationError):
        parse_reference_urls(many)
    assert len(parse_reference_urls(many[:20])) == 20


def test_png_passes_through_unchanged() -> None:
    raw = png_bytes()
    url = image_bytes_to_data_url(raw, "a.png")
    assert url == "data:image/png;base64," + base64.b64encode(raw).decode("ascii")


def test_other_formats_are_converted_to_png() -> None:
    buf = BytesIO()
    Image.new("RGB", (10, 10)).save(buf, format="BMP")
    url = image_bytes_to_data_url(buf.getvalue(), "a.bmp")
    assert url.startswith("data:image/png;base64,")


def test_unreadable_image() -> None:
    with pytest.raises(InputValidationError):
        image_bytes_to_data_url(b"not an image", "x.png")


def test_collect_images_limit() -> None:
    files = [_file(png_bytes(), f"{i}.png") for i in range(3)]
    with pytest.raises(InputValidationError):
        collect_images(files, "広告テキスト画像", 2)


def test_collect_images_rejects_extension() -> None:
    with pytest.raises(InputValidationError):
        collect_images([_file(png_bytes(), "a.gif")], "広告テキスト画像", 8)


def test_build_check_request_direct() -> None:
    form = MultiDict({
        "ad_text_source": "direct",
        "ad_text_direct": "  商品Aは効果抜群！\r\n",
        "reference_urls": "https://example.com/a",
        "client_shared_info": "初回限定",
    })
    files = MultiDict([("ad_creative_images", _file(png_bytes(), "c.png"))])
    req = build_check_request(form, files)
    assert req.ad_text_direct == "商品Aは効果抜群！"
    assert req.ad_text_csv is None
    assert req.ad_text_images == ()
    assert len(req.ad_creative_images) == 1
    assert req.reference_urls == ("https://example.com/a",)
    assert req.client_shared_info == "初回限定"


def test_build_check_request_csv() -> None:
    form = MultiDict({"ad_text_source": "csv", "ad_text_direct": "ignored"})
    files = MultiDict([("ad_text_csv", _file("\ufeff見出し,本文\nA,B".encode("utf-8"), "ad.csv"))])
    req = build_check_request(form, files)
    assert req.ad_text_csv == "見出し,本文\nA,B"
    assert req.ad_text_direct == ""
    assert req.is_csv_input


def test_build_check_request_csv_wrong_extension() -> None:
    form = MultiDict({"ad_text_source": "csv"})
    files = MultiDict([("ad_text_csv", _file(b"a,b", "ad.txt"))])
    with pytest.raises(InputValidationError):
        build_check_request(form, files)
