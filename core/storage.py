# =============================================================================
# Image Storage Service for Nine Picture Grid
# =============================================================================

import logging
import time
from typing import Dict, List, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from core.auth import AuthService
from core.backend import SupabaseBackend
from core.debug_logger import LogStore
from core.exceptions import describe_error
from models.constants import IMAGE_UPLOAD_OPTIONS, IMAGE_URL_QUALITY, STORAGE_BUCKET
from models.data_models import LogType, StorageObject

logger = logging.getLogger(__name__)


def optimized_image_url(url: str, store: Optional[LogStore] = None, webp: bool = True,
                        quality: int = IMAGE_URL_QUALITY, now: Optional[int] = None) -> str:
    """Add cache, format, quality and cache-busting parameters to an image URL."""
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        if store is not None:
            store.add_log("Error generating optimized URL", LogType.ERROR, {"url": url})
        return url

    params = dict(parse_qsl(parts.query))
    params["cache"] = "max-age=31536000,immutable"
    if webp:
        params["format"] = "webp"
    params["quality"] = str(quality)
    params["t"] = str(now if now is not None else int(time.time() * 1000))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(params), parts.fragment))


class ImageStorage:
    """Upload, resolve and remove grid images in the storage bucket."""

    def __init__(self, backend: SupabaseBackend, auth: AuthService, store: LogStore,
                 bucket: str = STORAGE_BUCKET, optimize_urls: bool = False):
        self.backend = backend
        self.auth = auth
        self.store = store
        self.bucket = bucket
        self.optimize_urls = optimize_urls

    def get_image_url(self, path: str) -> str:
        self.store.add_log(f"Getting public URL for {path}", LogType.INFO)
        public_url = self.backend.public_url(self.bucket, path)
        if not self.optimize_urls:
            return public_url
        url = optimized_image_url(public_url, self.store)
        self.store.add_log("Generated optimized URL", LogType.SUCCESS, {
            "originalUrl": public_url,
            "optimizedUrl": url,
        })
        return url

    async def upload_image(self, path: str, content: bytes, content_type: str) -> str:
        """Upload ``content`` to ``path`` and return its public URL."""
        session = await self.auth.active_session()
        self.store.add_log("Initiating file upload", LogType.INFO, {
            "bucket": self.bucket,
            "filePath": path,
            "fileType": content_type,
            "fileSize": len(content),
            "userId": session.user.id,
        })
        try:
            data = await self.backend.upload(
                self.bucket, path, content, content_type,
                access_token=session.access_token,
                cache_control=IMAGE_UPLOAD_OPTIONS["cacheControl"],
                upsert=IMAGE_UPLOAD_OPTIONS["upsert"],
            )
        except Exception as e:
            self.store.add_log("Upload failed", LogType.ERROR, describe_error(e))
            raise

        public_url = self.get_image_url(path)
        self.store.add_log("Upload successful", LogType.SUCCESS, {
            "filePath": path,
            "publicUrl": public_url,
            "uploadResponse": data,
        })
        return public_url

    async def remove_image(self, path: str) -> None:
        session = await self.auth.active_session()
        self.store.add_log(f"Removing file: {path}", LogType.INFO)
        try:
            await self.backend.remove(self.bucket, [path], access_token=session.access_token)
        except Exception as e:
            self.store.add_log("File removal failed", LogType.ERROR, {**describe_error(e), "filePath": path})
            raise
        self.store.add_log("File removed successfully", LogType.SUCCESS, {"filePath": path})

    async def list_images(self) -> List[StorageObject]:
        session = await self.auth.active_session()
        try:
            files = await self.backend.list_objects(self.bucket, session.access_token)
        except Exception as e:
            self.store.add_log("Error listing files in bucket", LogType.ERROR, describe_error(e))
            raise
        self.store.add_log("Retrieved file list from bucket", LogType.INFO, {"fileCount": len(files)})
        return files

    async def verify_access(self) -> bool:
        """Check that the signed-in user can list the bucket."""
        session = await self.auth.ensure_fresh_session()
        if session is None:
            self.store.add_log("No authenticated session found", LogType.WARNING)
            return False

        self.store.add_log("Verifying storage access...", LogType.INFO, {
            "userId": session.user.id,
            "role": session.user.role,
            "bucket": self.bucket,
        })
        try:
            files = await self.backend.list_objects(self.bucket, session.access_token)
        except Exception as e:
            self.store.add_log("Storage initialization failed", LogType.ERROR, describe_error(e))
            raise
        details: Dict[str, object] = {
            "fileCount": len(files),
            "bucket": self.bucket,
            "userId": session.user.id,
            "role": session.user.role,
        }
        self.store.add_log("Storage access verified successfully", LogType.SUCCESS, details)
        return True
