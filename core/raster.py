"""
Raster Image Module
Decoded, immutable RGBA pixel grids used throughout the comparison pipeline.
"""

import io
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple, Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from core.errors import DecodeError


@dataclass(frozen=True)
class RasterImage:
    """An RGBA image held as a read-only (height, width, 4) uint8 array."""
    pixels: np.ndarray

    def __post_init__(self):
        pixels = np.asarray(self.pixels)
        if pixels.ndim != 3 or pixels.shape[2] != 4:
            raise ValueError(f"Expected an (height, width, 4) array, got shape {pixels.shape}")
        if pixels.shape[0] == 0 or pixels.shape[1] == 0:
            raise ValueError("Raster images must have positive dimensions")
        if pixels.dtype != np.uint8:
            pixels = pixels.astype(np.uint8)
        else:
            pixels = pixels.copy()
        pixels.setflags(write=False)
        object.__setattr__(self, 'pixels', pixels)

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height), matching PIL's convention."""
        return self.width, self.height

    @classmethod
    def from_pil(cls, image: Image.Image) -> 'RasterImage':
        return cls(np.array(image.convert('RGBA'), dtype=np.uint8))

    @classmethod
    def from_bytes(cls, data: bytes) -> 'RasterImage':
        if not data:
            raise DecodeError("Image data is empty")
        try:
            with Image.open(io.BytesIO(data)) as img:
                img.load()
                return cls.from_pil(img)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError) as e:
            raise DecodeError(f"Could not decode image data: {e}") from e

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> 'RasterImage':
        path = Path(path)
        if not path.exists():
            raise DecodeError(f"Image not found: {path}", path=str(path))
        try:
            with Image.open(path) as img:
                img.load()
                return cls.from_pil(img)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError) as e:
            raise DecodeError(f"Could not decode image {path}: {e}", path=str(path)) from e

    @classmethod
    def solid(cls, width: int, height: int, color) -> 'RasterImage':
        """Build a single-colour image; `color` is RGB or RGBA."""
        rgba = tuple(color) if len(color) == 4 else tuple(color) + (255,)
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[:, :] = rgba
        return cls(pixels)

    def to_pil(self) -> Image.Image:
        return Image.fromarray(np.ascontiguousarray(self.pixels))

    def to_png_bytes(self) -> bytes:
        buf = io.BytesIO()
        self.to_pil().save(buf, format='PNG')
        return buf.getvalue()

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.to_pil().save(path, format='PNG')
        return path

    def __eq__(self, other):
        if not isinstance(other, RasterImage):
            return NotImplemented
        return self.pixels.shape == other.pixels.shape and bool(np.array_equal(self.pixels, other.pixels))

    __hash__ = None


ImageSource = Union[RasterImage, bytes, str, Path]


def load_raster(source: ImageSource) -> RasterImage:
    """Accept a RasterImage, encoded bytes or a file path and return a RasterImage."""
    if isinstance(source, RasterImage):
        return source
    if isinstance(source, (bytes, bytearray)):
        return RasterImage.from_bytes(bytes(source))
    if isinstance(source, (str, Path)):
        return RasterImage.from_path(source)
    raise DecodeError(f"Unsupported image source type: {type(source).__name__}")
