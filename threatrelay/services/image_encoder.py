from __future__ import annotations

import logging
from dataclasses import dataclass
from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError

from threatrelay.config import resolve_max_image_bytes
from threatrelay.telemetry import TelemetryClient

LOGGER = logging.getLogger("threatrelay.image_encoder")

SCALE_STEPS: tuple[float, ...] = (1.0, 0.85, 0.70, 0.55)
QUALITY_STEPS: tuple[int, ...] = (82, 72, 62, 52)
MIN_WIDTH = 320
ENCODED_FORMAT = "WEBP"
ENCODED_EXTENSION = "webp"
WEBP_METHOD = 4

_IMAGE_ERRORS: tuple[type[Exception], ...] = (
    OSError,
    ValueError,
    Image.DecompressionBombError,
)


@dataclass(frozen=True)
class EncodedImage:
    data: bytes
    extension: str
    attempts: int = 0

    @property
    def size(self) -> int:
        return len(self.data)


def extension_from_mime(mime_type: str) -> str:
    subtype = mime_type.split("/", 1)[1] if "/" in mime_type else "png"
    normalized = subtype.strip().lower()
    if normalized == "jpeg":
        return "jpg"
    for passthrough in ("svg", "webp", "gif"):
        if passthrough in normalized:
            return passthrough
    return "png"


def encode_within_budget(
    data: bytes,
    mime_type: str,
    max_bytes: int,
    *,
    telemetry: TelemetryClient | None = None,
) -> EncodedImage:
    """Re-encode `data` until it fits in `max_bytes`, degrading gracefully.

    Images already within budget come back untouched. Otherwise each scale
    in `SCALE_STEPS` is tried at every quality in `QUALITY_STEPS`, and the
    first candidate that fits is returned. When nothing fits, the smallest
    candidate seen is returned, or the original when no candidate beat it.
    A non-positive `max_bytes` means the default budget.
    """
    max_bytes = resolve_max_image_bytes(max_bytes)
    if len(data) <= max_bytes:
        return EncodedImage(data=data, extension=extension_from_mime(mime_type))

    try:
        width = _read_width(data)
    except _IMAGE_ERRORS as exc:
        LOGGER.warning(
            "image metadata unreadable; keeping original mime_type=%s bytes=%s error=%s",
            mime_type,
            len(data),
            type(exc).__name__,
        )
        return EncodedImage(data=data, extension=extension_from_mime(mime_type))

    best = data
    attempts = 0
    for scale in SCALE_STEPS:
        for quality in QUALITY_STEPS:
            attempts += 1
            try:
                candidate = _encode_candidate(data, width=width, scale=scale, quality=quality)
            except _IMAGE_ERRORS as exc:
                LOGGER.debug(
                    "image encode attempt failed scale=%s quality=%s error=%s",
                    scale,
                    quality,
                    type(exc).__name__,
                )
                continue
            if len(candidate) < len(best):
                best = candidate
            if len(candidate) <= max_bytes:
                _emit_encoded(telemetry, data, candidate, attempts, within_budget=True)
                return EncodedImage(data=candidate, extension=ENCODED_EXTENSION, attempts=attempts)

    LOGGER.info(
        "image still over budget after search original_bytes=%s best_bytes=%s max_bytes=%s",
        len(data),
        len(best),
        max_bytes,
    )
    _emit_encoded(telemetry, data, best, attempts, within_budget=False)
    extension = extension_from_mime(mime_type) if best is data else ENCODED_EXTENSION
    return EncodedImage(data=best, extension=extension, attempts=attempts)


def _read_width(data: bytes) -> int | None:
    with Image.open(BytesIO(data)) as image:
        width, _ = image.size
    return width or None


def _encode_candidate(data: bytes, *, width: int | None, scale: float, quality: int) -> bytes:
    with Image.open(BytesIO(data)) as source:
        image = ImageOps.exif_transpose(source)
        # `width` only gates scaling; the target comes from the oriented image.
        if width and scale < 1:
            image = _downscale(image, scale=scale)
        image = _webp_compatible(image)
        buffer = BytesIO()
        image.save(buffer, format=ENCODED_FORMAT, quality=quality, method=WEBP_METHOD)
    return buffer.getvalue()


def _downscale(image: Image.Image, *, scale: float) -> Image.Image:
    current_width, current_height = image.size
    target_width = max(MIN_WIDTH, round(current_width * scale))
    if target_width >= current_width:
        return image
    target_height = max(1, round(current_height * target_width / current_width))
    return image.resize((target_width, target_height), Image.Resampling.LANCZOS)


def _webp_compatible(image: Image.Image) -> Image.Image:
    if image.mode in {"RGB", "RGBA"}:
        return image
    has_alpha = image.mode in {"LA", "PA"} or "transparency" in image.info
    return image.convert("RGBA" if has_alpha else "RGB")


def _emit_encoded(
    telemetry: TelemetryClient | None,
    original: bytes,
    output: bytes,
    attempts: int,
    *,
    within_budget: bool,
) -> None:
    if telemetry is None:
        return
    telemetry.emit(
        "image.encode.completed",
        original_bytes=len(original),
        output_bytes=len(output),
        attempts=attempts,
        within_budget=within_budget,
    )
