import io
import os
from typing import Dict, Optional, Tuple
from uuid import uuid4

from flask import current_app
from PIL import Image, UnidentifiedImageError
from werkzeug.utils import secure_filename

from .helpers import safe_int

PIL_FORMATS = {
    "png": "PNG",
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "gif": "GIF",
    "webp": "WEBP",
}


def upload_folder() -> str:
    folder = current_app.config.get("UPLOAD_FOLDER") or os.path.join(
        current_app.instance_path, "uploads"
    )
    os.makedirs(folder, exist_ok=True)
    return folder


def allowed_image_extension(filename: str) -> bool:
    extension = os.path.splitext(filename)[1].lower().lstrip(".")
    if not extension:
        return False
    return extension in current_app.config["ALLOWED_IMAGE_EXTENSIONS"]


def parse_crop_box(form) -> Tuple[Optional[Tuple[int, int, int, int]], Optional[str]]:
    """Read the optional ``x``/``y``/``width``/``height`` crop fields of an upload form."""
    raw_values = {field: form.get(field) for field in ("x", "y", "width", "height")}
    if all(value in (None, "") for value in raw_values.values()):
        return None, None

    values: Dict[str, int] = {}
    for field, raw in raw_values.items():
        parsed = safe_int(raw) if raw not in (None, "") else None
        if parsed is None:
            # Croppers report fractional pixels.
            try:
                parsed = int(round(float(raw)))
            except (TypeError, ValueError):
                return None, "Crop values must be numbers."
        values[field] = parsed

    if values["x"] < 0 or values["y"] < 0 or values["width"] <= 0 or values["height"] <= 0:
        return None, "Crop area must be inside the image."
    return (
        values["x"],
        values["y"],
        values["x"] + values["width"],
        values["y"] + values["height"],
    ), None


def save_product_image(image_file, crop_box=None):
    if not image_file or not getattr(image_file, "filename", ""):
        return None, "No file uploaded"

    original_filename = secure_filename(image_file.filename)
    if not original_filename:
        return None, "Please choose a valid file name."

    mimetype = str(getattr(image_file, "mimetype", "") or "")
    if not mimetype.startswith("image/") or not allowed_image_extension(original_filename):
        return None, "Only image files are allowed"

    data = image_file.read()
    max_bytes = current_app.config["MAX_UPLOAD_SIZE_MB"] * 1024 * 1024
    if len(data) > max_bytes:
        return None, f"File too large (max {current_app.config['MAX_UPLOAD_SIZE_MB']}MB)"

    extension = os.path.splitext(original_filename)[1].lower()
    unique_filename = f"{uuid4().hex}{extension}"
    destination = os.path.join(upload_folder(), unique_filename)

    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            if crop_box:
                left, top, right, bottom = crop_box
                if right > image.width or bottom > image.height:
                    return None, "Crop area must be inside the image."
                image = image.crop(crop_box)
                if PIL_FORMATS[extension.lstrip(".")] == "JPEG" and image.mode not in ("RGB", "L"):
                    image = image.convert("RGB")
                image.save(destination, format=PIL_FORMATS[extension.lstrip(".")])
            else:
                with open(destination, "wb") as handle:
                    handle.write(data)
    except (UnidentifiedImageError, Image.DecompressionBombError):
        return None, "The uploaded file is not a valid image."
    except OSError as exc:
        current_app.logger.error("Unable to store uploaded image %s: %s", unique_filename, exc)
        return None, "We could not store the uploaded image. Please try again."

    return unique_filename, None


def remove_product_image(filename):
    if not filename:
        return
    if isinstance(filename, (list, tuple, set)):
        for item in filename:
            remove_product_image(item)
        return

    name = os.path.basename(str(filename))
    target = os.path.join(upload_folder(), name)
    try:
        os.remove(target)
    except OSError:
        return


def build_upload_url(filename: Optional[str]) -> str:
    if not filename:
        return ""
    return f"/uploads/{filename}"
