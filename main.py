import logging
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import httpx
from fastapi import FastAPI, Form, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from artifacts import DOCX_MEDIA_TYPE, PPTX_MEDIA_TYPE, artifact_response, sanitize_filename
from deck import assemble_deck
from errors import MalformedLessonError, RenderError
from images import ImageLoader, lesson_image_refs
from lesson_planner import plan_lesson
from lesson_schema import LessonContent, coerce_lesson
from settings import get_settings
from worksheet import compose_worksheet

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Lesson Deck Generator", version="1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class GenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    lesson: Dict[str, Any]
    image_map: Optional[Dict[str, str]] = Field(default=None, alias="imageMap")


class WorksheetRequest(GenerateRequest):
    support_mode: bool = Field(default=False, alias="supportMode")


def _render(req: GenerateRequest, suffix: str, render: Callable[..., bytes], **kwargs) -> bytes:
    """Validate, prefetch remote images, then render in memory.

    Client refs may only point at uploads, data URIs or public URLs; bare
    server paths are never read.
    """
    try:
        lesson = coerce_lesson(req.lesson)
    except MalformedLessonError as e:
        raise HTTPException(status_code=422, detail=str(e))

    with tempfile.TemporaryDirectory(prefix="lesson-images-") as cache_dir:
        loader = ImageLoader(uploads_dir=settings.uploads_dir, cache_dir=Path(cache_dir), allow_local_paths=False)
        with httpx.Client(timeout=settings.image_fetch_timeout) as client:
            loader.prefetch(lesson_image_refs(lesson, req.image_map), client)
        try:
            return render(lesson, image_map=req.image_map, loader=loader, **kwargs)
        except MalformedLessonError as e:
            raise HTTPException(status_code=422, detail=str(e))
        except RenderError as e:
            logger.exception("Rendering %s failed", suffix)
            raise HTTPException(status_code=500, detail=f"Render error: {e}")


def _download_name(lesson: Dict[str, Any], suffix: str, default: str) -> str:
    title = lesson.get("title") if isinstance(lesson, dict) else None
    return f"{sanitize_filename(title or '', fallback=default)}{suffix}"


@app.get("/health")
def health():
    return {"ok": True}


@app.post("/plan")
def plan_only(
    topic: str = Form(...),
    api_key: str = Form(...),     # not stored, just used for this request
    subject: str = Form("general"),
    key_stage: str = Form("ks2"),
    notes: Optional[str] = Form(None),
    provider: Optional[str] = Form(None),    # "openai" | "anthropic" | "gemini"
    support_mode: bool = Form(False),
):
    if not topic.strip():
        raise HTTPException(status_code=400, detail="Topic is empty")
    try:
        lesson: LessonContent = plan_lesson(provider or settings.default_llm_provider, api_key, topic,
                                            subject, key_stage, notes, support_mode)
    except Exception as e:
        raise HTTPException(status_code=400, detail=f"LLM error: {e}")
    return JSONResponse(lesson.model_dump(by_alias=True, mode="json"))


@app.post("/generate")
def generate_deck(req: GenerateRequest):
    data = _render(req, ".pptx", assemble_deck)
    return artifact_response(data, _download_name(req.lesson, ".pptx", "lesson"), PPTX_MEDIA_TYPE)


@app.post("/worksheet")
def generate_worksheet(req: WorksheetRequest):
    data = _render(req, ".docx", compose_worksheet, support_mode=req.support_mode)
    return artifact_response(data, _download_name(req.lesson, "_worksheet.docx", "lesson"), DOCX_MEDIA_TYPE)
