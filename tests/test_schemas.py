import pytest
from pydantic import ValidationError

from tilekit.models import AssetDescriptor, Tile
from tilekit.schemas import ImagePayload, SlicePayload, SliceRequest, SliceResponse


def test_image_payload_uses_wire_alias_for_mime_type():
    asset = AssetDescriptor(bytes=b"\x89PNG", width=10, height=20, name="logo", mime_type="image/webp")

    payload = ImagePayload.from_asset(asset).to_wire()

    assert payload == {"bytes": [137, 80, 78, 71], "width": 10, "height": 20, "name": "logo", "type": "image/webp"}


def test_image_payload_rejects_out_of_range_bytes():
    with pytest.raises(ValidationError):
        ImagePayload(bytes=[1, 256], width=1, height=1, name="x")


def test_slice_request_parses_camel_case_message():
    request = SliceRequest.model_validate(
        {
            "type": "slice-request",
            "requestId": "abc",
            "imageData": {"bytes": [1, 2], "width": 5000, "height": 3000, "name": "banner", "type": "image/png"},
            "sliceWidth": 3686,
            "sliceHeight": 3000,
            "sliceStrategy": {"direction": "vertical"},
        }
    )

    assert request.request_id == "abc"
    assert request.image_data.raw_bytes() == b"\x01\x02"
    assert request.slice_width == 3686


def test_slice_request_rejects_wrong_type_tag():
    with pytest.raises(ValidationError):
        SliceRequest.model_validate(
            {
                "type": "slice-response",
                "imageData": {"bytes": [1], "width": 1, "height": 1, "name": "x"},
                "sliceWidth": 1,
                "sliceHeight": 1,
                "sliceStrategy": {},
            }
        )


def test_failed_response_always_carries_error():
    response = SliceResponse.model_validate({"type": "slice-response", "success": False, "imageName": "x"})

    assert response.error == "unknown error"
    assert response.to_wire()["error"] == "unknown error"


def test_slice_payload_converts_to_tile():
    tile = Tile(bytes=b"\x00\xff", width=828, height=828, x=7372, y=7372, row=2, col=2, name="p_r2_c2")

    wire = SlicePayload.from_tile(tile).to_wire()
    restored = SlicePayload.model_validate(wire).to_tile()

    assert wire["bytes"] == [0, 255]
    assert restored == tile
