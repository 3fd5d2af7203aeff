"""
Image Enhancement Module for Business Card Capture
Improves legibility of captured photos before structured extraction.

Steps:
1. Bound dimensions (max 2560px on the longer side)
2. Grayscale (luma) + contrast stretch
3. Sharpen with a fixed 3x3 kernel (interior pixels only)
4. Re-encode as JPEG (quality 90)
"""

import io
import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import CaptureError

logger = logging.getLogger(__name__)

MAX_DIMENSION = 2560
CONTRAST = 30  # 0-100 scale
JPEG_QUALITY = 90
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114])

SHARPEN_KERNEL = np.array([
    [0, -1, 0],
    [-1, 5, -1],
    [0, -1, 0]
], dtype=np.float32)


@dataclass
class RawCapture:
    """A single still image as an RGBA pixel buffer (height x width x 4)."""
    width: int
    height: int
    pixels: np.ndarray
    source: Optional[bytes] = None
    mime_type: str = "image/jpeg"

    @classmethod
    def from_array(cls, pixels: np.ndarray) -> "RawCapture":
        """Wrap an RGB or RGBA uint8 array."""
        if pixels.ndim != 3 or pixels.shape[2] not in (3, 4):
            raise CaptureError(f"Unsupported pixel buffer shape: {pixels.shape}")
        if pixels.shape[2] == 3:
            alpha = np.full(pixels.shape[:2] + (1,), 255, dtype=np.uint8)
            pixels = np.concatenate([pixels.astype(np.uint8), alpha], axis=2)
        height, width = pixels.shape[:2]
        return cls(width=width, height=height, pixels=pixels.astype(np.uint8))

    @classmethod
    def from_bytes(cls, data: bytes) -> "RawCapture":
        """Decode an encoded photo (JPEG, PNG, ...) into an RGBA buffer.

        Raises:
            CaptureError: If the bytes are empty or not a decodable image
        """
        if not data:
            raise CaptureError("No image data received")

        try:
            with Image.open(io.BytesIO(data)) as img:
                mime_type = Image.MIME.get(img.format, "image/jpeg")
                img = ImageOps.exif_transpose(img)
                pixels = np.array(img.convert("RGBA"), dtype=np.uint8)
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise CaptureError(f"Could not decode image: {e}") from e

        height, width = pixels.shape[:2]
        logger.debug(f"Decoded capture: {width}x{height} ({mime_type})")
        return cls(width=width, height=height, pixels=pixels, source=data, mime_type=mime_type)


@dataclass
class EnhancedImage:
    """Compressed image payload handed to the extraction client."""
    data: bytes
    mime_type: str
    width: int
    height: int

    @property
    def size_bytes(self) -> int:
        return len(self.data)


def bound_dimensions(width: int, height: int, max_dimension: int = MAX_DIMENSION) -> Tuple[int, int]:
    """Scale (width, height) so neither exceeds max_dimension, keeping aspect ratio."""
    if width > max_dimension or height > max_dimension:
        ratio = min(max_dimension / width, max_dimension / height)
        # Round half up
        width = max(1, int(math.floor(width * ratio + 0.5)))
        height = max(1, int(math.floor(height * ratio + 0.5)))
    return width, height


def contrast_factor(contrast: float = CONTRAST) -> float:
    return (259 * (contrast + 255)) / (255 * (259 - contrast))


def apply_contrast(luma: np.ndarray, contrast: float = CONTRAST) -> np.ndarray:
    """Stretch luma values around mid-gray and store them as uint8."""
    factor = contrast_factor(contrast)
    values = factor * (np.asarray(luma, dtype=np.float64) - 128) + 128
    return np.rint(np.clip(values, 0, 255)).astype(np.uint8)


def to_grayscale_contrast(pixels: np.ndarray, contrast: float = CONTRAST) -> np.ndarray:
    """Replace R, G and B with the contrast-adjusted luma. Alpha is kept."""
    luma = pixels[..., :3].astype(np.float64) @ LUMA_WEIGHTS
    value = apply_contrast(luma, contrast)

    result = pixels.copy()
    for channel in range(3):
        result[..., channel] = value
    return result


def sharpen(pixels: np.ndarray) -> np.ndarray:
    """Apply SHARPEN_KERNEL to interior pixels of a grayscale RGBA buffer.

    Reads only the input buffer; border rows and columns are left as they are.
    Results saturate to 0-255.
    """
    result = pixels.copy()
    height, width = pixels.shape[:2]
    if height < 3 or width < 3:
        return result

    gray = np.ascontiguousarray(pixels[..., 0])
    filtered = cv2.filter2D(gray, -1, SHARPEN_KERNEL)

    for channel in range(3):
        result[1:-1, 1:-1, channel] = filtered[1:-1, 1:-1]
    return result


def encode_jpeg(pixels: np.ndarray, quality: int = JPEG_QUALITY) -> bytes:
    """Encode an RGBA buffer as JPEG. Alpha is dropped."""
    bgr = cv2.cvtColor(pixels, cv2.COLOR_RGBA2BGR)
    ok, buffer = cv2.imencode(".jpg", bgr, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
    if not ok:
        raise ValueError("JPEG encoding failed")
    return buffer.tobytes()


class ImageEnhancer:
    """Enhances captured business card photos for text extraction."""

    def __init__(self, max_dimension: int = MAX_DIMENSION):
        self.max_dimension = max_dimension

    def enhance(self, capture: RawCapture) -> EnhancedImage:
        """
        Apply the enhancement steps to a captured image.

        Never raises: if any step fails, the original image is returned
        without modification.

        Args:
            capture: Raw RGBA capture

        Returns:
            EnhancedImage with JPEG payload
        """
        try:
            pixels = capture.pixels
            if pixels is None or pixels.ndim != 3 or pixels.shape[2] != 4:
                raise ValueError(f"Expected RGBA buffer, got {getattr(pixels, 'shape', None)}")

            height, width = pixels.shape[:2]
            logger.debug(f"Original capture shape: {pixels.shape}")

            # 1. Bound dimensions
            new_width, new_height = bound_dimensions(width, height, self.max_dimension)
            if (new_width, new_height) != (width, height):
                pixels = cv2.resize(pixels, (new_width, new_height), interpolation=cv2.INTER_AREA)
                logger.debug(f"Resized to: {new_width}x{new_height}")

            # 2. Grayscale + contrast
            adjusted = to_grayscale_contrast(pixels)

            # 3. Sharpen
            sharpened = sharpen(adjusted)

            # 4. Re-encode
            data = encode_jpeg(sharpened)
            logger.info(f"Enhanced image: {new_width}x{new_height}, {len(data)} bytes")

            return EnhancedImage(
                data=data,
                mime_type="image/jpeg",
                width=new_width,
                height=new_height
            )

        except Exception as e:
            logger.warning(f"Enhancement failed, using original image: {e}")
            return self._passthrough(capture)

    @staticmethod
    def _passthrough(capture: RawCapture) -> EnhancedImage:
        """Return the capture without any enhancement applied."""
        if capture.source:
            data = capture.source
            mime_type = capture.mime_type
        else:
            try:
                data = encode_jpeg(capture.pixels)
            except Exception as e:
                logger.error(f"Could not encode original capture: {e}")
                data = b""
            mime_type = "image/jpeg"

        return EnhancedImage(
            data=data,
            mime_type=mime_type,
            width=capture.width,
            height=capture.height
        )
