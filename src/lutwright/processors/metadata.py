"""Carry a fixed subset of EXIF tags from the source to the output image.

Only orientation, capture time, camera make/model and GPS position are
copied. Everything here is best effort: a tag set that cannot be read or
serialized yields ``None`` and the image is written without metadata.
"""

import logging
from typing import Optional

from PIL import ExifTags, Image

logger = logging.getLogger(__name__)


ORIENTATION = 0x0112
DATETIME = 0x0132
MAKE = 0x010F
MODEL = 0x0110
DATETIME_ORIGINAL = 0x9003

GPS_LATITUDE_REF = 1
GPS_LATITUDE = 2
GPS_LONGITUDE_REF = 3
GPS_LONGITUDE = 4

BASE_TAGS = (ORIENTATION, DATETIME, MAKE, MODEL)
EXIF_IFD_TAGS = (DATETIME_ORIGINAL,)
GPS_TAGS = (GPS_LATITUDE_REF, GPS_LATITUDE, GPS_LONGITUDE_REF, GPS_LONGITUDE)


def select_metadata(source: Image.Exif) -> Image.Exif:
    """Build a new EXIF block holding only the copied tags present in ``source``."""
    selected = Image.Exif()
    for tag in BASE_TAGS:
        value = source.get(tag)
        if value is not None:
            selected[tag] = value

    exif_ifd = source.get_ifd(ExifTags.IFD.Exif)
    picked = {tag: exif_ifd[tag] for tag in EXIF_IFD_TAGS if tag in exif_ifd}
    if picked:
        selected[ExifTags.IFD.Exif] = picked

    gps_ifd = source.get_ifd(ExifTags.IFD.GPSInfo)
    picked = {tag: gps_ifd[tag] for tag in GPS_TAGS if tag in gps_ifd}
    if picked:
        selected[ExifTags.IFD.GPSInfo] = picked

    return selected


def extract_metadata(image: Image.Image) -> Optional[bytes]:
    """Serialized EXIF with the copied tag subset, or ``None``.

    Never raises: unreadable metadata is logged at debug level and
    treated as absent.
    """
    try:
        selected = select_metadata(image.getexif())
        if len(selected) == 0:
            return None
        return selected.tobytes()
    except Exception as e:
        logger.debug(f"Could not read EXIF metadata: {e}")
        return None


__all__ = [
    "BASE_TAGS",
    "EXIF_IFD_TAGS",
    "GPS_TAGS",
    "select_metadata",
    "extract_metadata",
]
