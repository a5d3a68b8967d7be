import base64
import io

import pytest
from PIL import Image

from paperworth.domain.deadline import RequestDeadline
from paperworth.domain.errors import BadRequest, DeadlineExceeded, InternalError
from paperworth.domain.services.ocr_service import OcrService, preprocess_image

RECEIPT_TEXT = "MCDONALD'S\nOrchard Road\n1 x Big Mac $6.50\nFries $3.00\nTOTAL $12.50\nDATE: 03/04/2024"


def _png(width=200, height=100, color=(200, 30, 30)):
    out = io.BytesIO()
    Image.new("RGB", (width, height), color).save(out, format="PNG")
    return out.getvalue()


def test_scan_upload(client, auth_headers, vision):
    vision.text = RECEIPT_TEXT
    response = client.post(
        "/api/ocr/scan",
        files={"file": ("receipt.png", _png(), "image/png")},
        headers=auth_headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["merchantName"] == "MCDONALD'S"
    assert body["totalAmount"] == 12.5
    assert body["date"] == "03/04/2024"
    assert body["category"] == "Fast Food"
    assert body["fullText"] == RECEIPT_TEXT
    assert body["items"][0] == {"name": "Big Mac", "price": 6.5, "quantity": 1}
    assert vision.calls == 1


def test_scan_without_items_omits_key(client, auth_headers, vision):
    vision.text = "Corner Bakery\nThank you"
    body = client.post(
        "/api/ocr/scan",
        files={"file": ("receipt.png", _png(), "image/png")},
        headers=auth_headers,
    ).json()
    assert "items" not in body
    assert body["date"] == "Unknown Date"
    assert body["totalAmount"] == 0.0


def test_scan_empty_file(client, auth_headers, vision):
    response = client.post(
        "/api/ocr/scan",
        files={"file": ("receipt.png", b"", "image/png")},
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert vision.calls == 0


def test_scan_corrupt_image(client, auth_headers, vision):
    response = client.post(
        "/api/ocr/scan",
        files={"file": ("receipt.png", b"not an image", "image/png")},
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert vision.calls == 0


def test_provider_error_is_reported(client, auth_headers, vision):
    vision.error = "quota exceeded"
    response = client.post(
        "/api/ocr/scan",
        files={"file": ("receipt.png", _png(), "image/png")},
        headers=auth_headers,
    )
    assert response.status_code == 500
    assert response.json() == {"detail": "Error processing image: quota exceeded"}


def test_scan_base64_with_data_prefix(client, auth_headers, vision):
    vision.text = RECEIPT_TEXT
    encoded = "data:image/png;base64," + base64.b64encode(_png()).decode("ascii")
    response = client.post(
        "/api/ocr/scan/base64", json={"base64Image": encoded}, headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json()["merchantName"] == "MCDONALD'S"


def test_scan_base64_rejects_garbage(client, auth_headers):
    response = client.post(
        "/api/ocr/scan/base64", json={"base64Image": "@@not base64@@"}, headers=auth_headers
    )
    assert response.status_code == 400


def test_scan_requires_token(client):
    response = client.post("/api/ocr/scan", files={"file": ("receipt.png", _png(), "image/png")})
    assert response.status_code == 401


def test_preprocess_shrinks_and_grayscales():
    processed = Image.open(io.BytesIO(preprocess_image(_png(3000, 1200))))
    assert processed.format == "PNG"
    assert processed.mode == "L"
    assert processed.size == (1500, 600)


def test_preprocess_keeps_small_images():
    processed = Image.open(io.BytesIO(preprocess_image(_png(640, 480))))
    assert processed.size == (640, 480)


def test_unconfigured_provider():
    with pytest.raises(InternalError):
        OcrService(None).scan(_png(), RequestDeadline(5))


def test_empty_image_is_rejected_before_provider(vision):
    with pytest.raises(BadRequest):
        OcrService(vision).scan(b"", RequestDeadline(5))


def test_expired_deadline_skips_provider(vision):
    with pytest.raises(DeadlineExceeded):
        OcrService(vision).scan(_png(), RequestDeadline(0))
    assert vision.calls == 0
