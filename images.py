"""
Menu images hosted on Cloudinary.

Images are stored on documents as URLs. Upload goes through the Cloudinary
SDK; display URLs are built with transformation presets so the same stored
URL can serve cards, thumbnails and hero banners.
"""

import logging
import re
from typing import Any, Dict

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader
import cloudinary.utils
from werkzeug.utils import secure_filename

from errors import StoreError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_EXTS = {"png", "jpg", "jpeg", "webp"}

IMAGE_PRESETS: Dict[str, Dict[str, Any]] = {
    "foodProfessional": {
        "width": 800,
        "height": 600,
        "crop": "fill",
        "gravity": "auto",
        "quality": "auto:best",
        "fetch_format": "auto",
        "effect": "sharpen:100",
        "color_space": "srgb",
    },
    "thumbnail": {
        "width": 150,
        "height": 150,
        "crop": "thumb",
        "gravity": "auto",
        "quality": "auto:good",
        "fetch_format": "auto",
    },
    "menuCard": {
        "width": 400,
        "height": 300,
        "crop": "fill",
        "gravity": "auto",
        "quality": "auto:good",
        "fetch_format": "auto",
    },
    "hero": {
        "width": 1200,
        "height": 600,
        "crop": "fill",
        "gravity": "auto",
        "quality": "auto:best",
        "fetch_format": "auto",
    },
    "backgroundBlur": {
        "width": 800,
        "height": 600,
        "crop": "fill",
        "effect": "blur:1000",
        "quality": "auto:low",
        "fetch_format": "auto",
    },
}

RESPONSIVE_WIDTHS = (400, 600, 800, 1200)

_TRANSFORM_SEGMENT = re.compile(r"^[a-z]{1,2}_[^/.]+$")


def configure(cloud_name: str, api_key: str = "", api_secret: str = "") -> None:
    cloudinary.config(
        cloud_name=cloud_name,
        api_key=api_key,
        api_secret=api_secret,
        secure=True,
    )


def upload_image(file_storage, folder: str = "menu-items") -> str:
    """Upload a werkzeug FileStorage and return its secure URL."""
    if not file_storage or not file_storage.filename:
        raise ValidationError("No image selected.")

    filename = secure_filename(file_storage.filename)
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if ext not in ALLOWED_IMAGE_EXTS:
        raise ValidationError("Invalid file type. Use png, jpg, jpeg, webp.")

    try:
        result = cloudinary.uploader.upload(
            file_storage.stream,
            folder=folder,
            resource_type="image",
        )
    except cloudinary.exceptions.Error as e:
        logger.error("Cloudinary upload failed: %s", e)
        raise StoreError("Image upload failed")

    return result["secure_url"]


def _transformation(options: Dict[str, Any]) -> str:
    transformation, _ = cloudinary.utils.generate_transformation_string(**dict(options))
    return transformation or ""


def build_image_url(image: str, **options) -> str:
    """
    Display URL for a stored image reference.

    Public ids are turned into delivery URLs. Cloudinary URLs get the
    transformation inserted after ``/upload/``, replacing any transformation
    already there but keeping the version and folders. Other URLs are
    returned unchanged.
    """
    if not image:
        return ""

    if not image.startswith("http"):
        url, _ = cloudinary.utils.cloudinary_url(image, secure=True, **options)
        return url

    if "cloudinary.com" not in image or "/upload/" not in image:
        return image

    transformation = _transformation(options)
    if not transformation:
        return image

    base, _, rest = image.partition("/upload/")
    parts = rest.split("/")
    # drop leading transformation segments like w_100,h_100
    while parts and _TRANSFORM_SEGMENT.match(parts[0]):
        parts.pop(0)
    return f"{base}/upload/{transformation}/{'/'.join(parts)}"


def optimized_image_url(image: str, preset: str = "menuCard") -> str:
    return build_image_url(image, **IMAGE_PRESETS[preset])


def responsive_srcset(image: str) -> str:
    return ", ".join(
        f"{build_image_url(image, width=w, crop='fill', gravity='auto', quality='auto', fetch_format='auto')} {w}w"
        for w in RESPONSIVE_WIDTHS
    )
