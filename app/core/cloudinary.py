import logging
from typing import BinaryIO, List, Sequence, Tuple, Union

import cloudinary
import cloudinary.uploader

from app.core.exceptions import AssetUploadFailed

logger = logging.getLogger(__name__)

UploadSource = Union[bytes, BinaryIO]


class CloudinaryAssetStore:
    """Delivery photo storage on Cloudinary."""

    def __init__(self, cloud_name: str, api_key: str, api_secret: str, base_folder: str = "studio-bookings"):
        self.base_folder = base_folder
        self._credentials = {
            "cloud_name": cloud_name,
            "api_key": api_key,
            "api_secret": api_secret,
            "secure": True,
        }

    def upload_image(self, file: UploadSource, folder: str = "deliveries") -> dict:
        """Upload image to Cloudinary"""
        try:
            result = cloudinary.uploader.upload(
                file,
                folder=f"{self.base_folder}/{folder}",
                resource_type="image",
                transformation=[{"quality": "auto", "fetch_format": "auto"}],
                **self._credentials,
            )
        except Exception as e:
            logger.error("Cloudinary upload failed: %s", e)
            raise AssetUploadFailed()
        return {
            "url": result["secure_url"],
            "public_id": result["public_id"],
            "format": result.get("format"),
            "size": result.get("bytes"),
        }

    def delete_image(self, public_id: str) -> None:
        """Delete image from Cloudinary"""
        try:
            result = cloudinary.uploader.destroy(public_id, **self._credentials)
        except Exception as e:
            logger.error("Cloudinary deletion failed for %s: %s", public_id, e)
            raise AssetUploadFailed("Failed to delete image")
        if result.get("result") not in ("ok", "not found"):
            logger.error("Cloudinary refused to delete %s: %s", public_id, result)
            raise AssetUploadFailed("Failed to delete image")

    def upload_many(self, files: Sequence[Tuple[str, UploadSource]], folder: str = "deliveries") -> List[dict]:
        """Upload every file or none of them.

        ``files`` holds ``(filename, content)`` pairs. If one upload fails the
        assets already stored are deleted before ``AssetUploadFailed`` is raised.
        """
        uploaded: List[dict] = []
        for filename, content in files:
            try:
                asset = self.upload_image(content, folder=folder)
            except AssetUploadFailed:
                logger.error("Upload of %s failed, rolling back %d uploaded photo(s)", filename, len(uploaded))
                self.discard(asset["public_id"] for asset in uploaded)
                raise AssetUploadFailed(f"Failed to upload {filename}")
            asset["filename"] = filename
            uploaded.append(asset)
        return uploaded

    def discard(self, public_ids) -> None:
        """Best-effort cleanup; a failed deletion is logged and skipped."""
        for public_id in public_ids:
            try:
                self.delete_image(public_id)
            except AssetUploadFailed:
                logger.warning("Could not delete orphaned asset %s", public_id)
