"""Pydantic DTOs for messages crossing the host/renderer boundary."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from tilekit.models import AssetDescriptor, Tile

SLICE_REQUEST = "slice-request"
SLICE_RESPONSE = "slice-response"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """JSON-serializable payload using the camelCase wire names."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def _check_byte_values(value: list[int]) -> list[int]:
    if value and (min(value) < 0 or max(value) > 255):
        raise ValueError("byte values must be within 0..255")
    return value


class ImagePayload(_WireModel):
    """Source image bytes copied into the request as a plain integer list."""

    bytes: list[int] = Field(description="Raw encoded image bytes")
    width: int = Field(ge=1)
    height: int = Field(ge=1)
    name: str = Field(min_length=1)
    mime_type: str = Field(default="image/png", alias="type")

    @field_validator("bytes")
    @classmethod
    def _validate_bytes(cls, value: list[int]) -> list[int]:
        return _check_byte_values(value)

    @classmethod
    def from_asset(cls, asset: AssetDescriptor) -> "ImagePayload":
        return cls(
            bytes=list(asset.bytes),
            width=asset.width,
            height=asset.height,
            name=asset.name,
            mime_type=asset.mime_type,
        )

    def raw_bytes(self) -> bytes:
        return bytes(self.bytes)


class SliceRequest(_WireModel):
    """Host → renderer request to cut one image."""

    type: Literal["slice-request"] = SLICE_REQUEST
    request_id: str | None = Field(default=None, alias="requestId")
    image_data: ImagePayload = Field(alias="imageData")
    slice_width: int = Field(ge=1, alias="sliceWidth")
    slice_height: int = Field(ge=1, alias="sliceHeight")
    slice_strategy: dict[str, Any] = Field(alias="sliceStrategy")


class SlicePayload(_WireModel):
    """Single encoded tile in a slice response."""

    bytes: list[int]
    width: int = Field(ge=1)
    height: int = Field(ge=1)
    x: int = Field(ge=0)
    y: int = Field(ge=0)
    row: int = Field(ge=0)
    col: int = Field(ge=0)
    name: str

    @field_validator("bytes")
    @classmethod
    def _validate_bytes(cls, value: list[int]) -> list[int]:
        return _check_byte_values(value)

    @classmethod
    def from_tile(cls, tile: Tile) -> "SlicePayload":
        return cls(
            bytes=list(tile.bytes),
            width=tile.width,
            height=tile.height,
            x=tile.x,
            y=tile.y,
            row=tile.row,
            col=tile.col,
            name=tile.name,
        )

    def to_tile(self) -> Tile:
        return Tile(
            bytes=bytes(self.bytes),
            width=self.width,
            height=self.height,
            x=self.x,
            y=self.y,
            row=self.row,
            col=self.col,
            name=self.name,
        )


class SliceResponse(_WireModel):
    """Renderer → host answer for one slice request."""

    type: Literal["slice-response"] = SLICE_RESPONSE
    request_id: str | None = Field(default=None, alias="requestId")
    success: bool
    image_name: str = Field(alias="imageName")
    slices: list[SlicePayload] | None = None
    original_width: int | None = Field(default=None, alias="originalWidth")
    original_height: int | None = Field(default=None, alias="originalHeight")
    error: str | None = None

    @model_validator(mode="after")
    def _require_error_on_failure(self) -> "SliceResponse":
        if not self.success and not self.error:
            self.error = "unknown error"
        return self
