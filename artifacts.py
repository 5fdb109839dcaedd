import io
import logging
import os
import re
import tempfile
import urllib.parse
from pathlib import Path
from typing import Union

from fastapi.responses import StreamingResponse

from errors import ArtifactWriteError

logger = logging.getLogger(__name__)

PPTX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.presentationml.presentation"
DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

UNSAFE_CHARS = r"[^A-Za-z0-9 \-_()]"


def sanitize_filename(text: str, fallback: str = "lesson", max_len: int = 100) -> str:
    """Keep letters, digits, spaces, hyphens, underscores and parentheses."""
    text = re.sub(UNSAFE_CHARS, "", text or "")
    text = re.sub(r"\s+", " ", text).strip()
    return text[:max_len] or fallback


def write_artifact(path: Union[str, Path], data: bytes) -> Path:
    """Write ``data`` to ``path`` via a temp file in the same directory, then rename."""
    path = Path(path)
    tmp_name = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".part")
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise ArtifactWriteError(f"could not write {path}: {e}") from e
    logger.info("Wrote %s (%d bytes)", path, len(data))
    return path


def artifact_response(data: bytes, filename: str, media_type: str) -> StreamingResponse:
    """Stream rendered bytes as a download; nothing is kept on the server."""
    cd = f'attachment; filename="{filename}"; filename*=UTF-8\'\'{urllib.parse.quote(filename)}'
    return StreamingResponse(io.BytesIO(data), media_type=media_type, headers={"Content-Disposition": cd})
