"""Image resolution for slides and worksheet activities.

Resolution (which refs a slide uses) is pure. Loading turns a ref into bytes
from a data URI, an uploaded file, a local path, or a prefetched remote URL.
The renderers never touch the network: remote refs must be prefetched by the
caller with ``ImageLoader.prefetch``.
"""
import base64
import binascii
import hashlib
import ipaddress
import logging
import tempfile
from io import BytesIO
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional

import httpx
from PIL import Image, UnidentifiedImageError

from lesson_schema import ActivityItem, SlideSpec

logger = logging.getLogger(__name__)

ImageMap = Mapping[str, str]

MAX_SLIDE_IMAGES = 4
UPLOADS_PREFIX = "/uploads/"
MAX_REDIRECTS = 3


def is_remote(ref: str) -> bool:
    return ref.startswith(("http://", "https://"))


def is_public_url(url) -> bool:
    """False for localhost and for literal private, loopback or link-local addresses."""
    host = httpx.URL(str(url)).host.lower()
    if not host or host == "localhost" or host.endswith(".localhost"):
        return False
    try:
        return ipaddress.ip_address(host).is_global
    except ValueError:
        return True


def resolve_slide_images(slide: SlideSpec, image_map: Optional[ImageMap] = None) -> List[str]:
    """Pick the image refs for one slide.

    User-selected images win outright; otherwise suggestions found in the
    image map are used in suggestion order. The two sources are never merged.
    """
    selected = [ref for ref in (slide.selected_images or []) if ref]
    if selected:
        return selected[:MAX_SLIDE_IMAGES]
    if not image_map:
        return []
    found = []
    for description in slide.image_suggestions:
        ref = image_map.get(description)
        if ref:
            found.append(ref)
        else:
            logger.debug("No image for suggestion %r", description)
    return found[:MAX_SLIDE_IMAGES]


def resolve_activity_image(activity: ActivityItem, image_map: Optional[ImageMap] = None) -> Optional[str]:
    if activity.image_url:
        return activity.image_url
    if image_map:
        for image in activity.images or []:
            ref = image_map.get(image.description)
            if ref:
                return ref
    return None


def _verified(stream: BytesIO, ref: str) -> Optional[BytesIO]:
    try:
        with Image.open(stream) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        logger.warning("Not a usable image %s: %s", ref[:80], e)
        return None
    stream.seek(0)
    return stream


class ImageLoader:
    """Loads image refs into in-memory streams; unreadable refs yield None."""

    def __init__(self, uploads_dir: Optional[Path] = None, cache_dir: Optional[Path] = None,
                 allow_local_paths: bool = True):
        self.uploads_dir = Path(uploads_dir) if uploads_dir else None
        self.cache_dir = Path(cache_dir) if cache_dir else None
        self.allow_local_paths = allow_local_paths
        self._remote: Dict[str, Path] = {}

    def local_path(self, ref: str) -> Optional[Path]:
        """Where ``ref`` lives on disk, or None if it may not be read.

        ``/uploads/`` refs must stay inside the uploads dir. Other paths are
        only honoured when ``allow_local_paths`` is set.
        """
        if is_remote(ref):
            return self._remote.get(ref)
        if ref.startswith(UPLOADS_PREFIX) and self.uploads_dir is not None:
            root = self.uploads_dir.resolve()
            target = (root / ref[len(UPLOADS_PREFIX):]).resolve()
            if not target.is_relative_to(root):
                logger.warning("Upload ref escapes the uploads dir, skipping: %s", ref)
                return None
            return target
        if not self.allow_local_paths:
            logger.warning("Local image paths are not allowed, skipping: %s", ref)
            return None
        return Path(ref)

    def load(self, ref: str) -> Optional[BytesIO]:
        if not ref:
            return None
        if ref.startswith("data:image"):
            try:
                return _verified(BytesIO(base64.b64decode(ref.split(",", 1)[1])), ref)
            except (IndexError, binascii.Error) as e:
                logger.warning("Bad data URI image: %s", e)
                return None

        path = self.local_path(ref)
        if path is None:
            if is_remote(ref):
                logger.warning("Remote image was not prefetched, skipping: %s", ref)
            return None
        try:
            return _verified(BytesIO(path.read_bytes()), ref)
        except OSError as e:
            logger.warning("Failed to load image %s: %s", ref, e)
            return None

    def load_all(self, refs: Iterable[str]) -> List[BytesIO]:
        streams = []
        for ref in refs:
            stream = self.load(ref)
            if stream is not None:
                streams.append(stream)
        return streams

    def prefetch(self, refs: Iterable[str], client: httpx.Client) -> int:
        """Download remote refs so later loads are local. Returns the number fetched."""
        if self.cache_dir is None:
            self.cache_dir = Path(tempfile.mkdtemp(prefix="lesson-images-"))
        self.cache_dir.mkdir(parents=True, exist_ok=True)

        fetched = 0
        for ref in refs:
            if not ref or not is_remote(ref) or ref in self._remote:
                continue
            try:
                resp = self._fetch(ref, client)
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                logger.warning("Failed to fetch image %s: %s", ref, e)
                continue
            if resp is None:
                logger.warning("Refusing to fetch image from a private host: %s", ref)
                continue
            target = self.cache_dir / hashlib.sha1(ref.encode("utf-8")).hexdigest()
            target.write_bytes(resp.content)
            self._remote[ref] = target
            fetched += 1
        return fetched

    @staticmethod
    def _fetch(url: str, client: httpx.Client) -> Optional[httpx.Response]:
        # Redirects are followed by hand so every hop gets the host check.
        for _ in range(MAX_REDIRECTS + 1):
            if not is_public_url(url):
                return None
            resp = client.get(url, follow_redirects=False)
            if not resp.is_redirect:
                resp.raise_for_status()
                return resp
            url = resp.next_request.url if resp.next_request else resp.headers["location"]
        raise httpx.TooManyRedirects(f"more than {MAX_REDIRECTS} redirects", request=resp.request)


def lesson_image_refs(lesson, image_map: Optional[ImageMap] = None) -> List[str]:
    """Every ref a render of ``lesson`` may need, for prefetching."""
    refs: List[str] = []
    for slide in lesson.slides:
        refs.extend(resolve_slide_images(slide, image_map))
    if lesson.resource_content:
        for activity in lesson.resource_content.items:
            ref = resolve_activity_image(activity, image_map)
            if ref:
                refs.append(ref)
    return refs
