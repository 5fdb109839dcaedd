import json
import logging
import re
import textwrap
from typing import Dict, List, Optional

from lesson_schema import LessonContent, SlideSpec, coerce_lesson
from themes import resolve_theme
from visual_formats import FORMAT_TEMPLATES, formats_for_subject

logger = logging.getLogger(__name__)

OPENAI_MODEL = "gpt-4o-mini"
ANTHROPIC_MODEL = "claude-3-5-sonnet-20240620"
GEMINI_MODEL = "gemini-1.5-flash"

# ---- Prompt helpers ----------------------------------------------------------

PROMPT_JSON_SPEC = """
Return ONLY valid minified JSON with this exact schema:
{
  "title": "string",
  "learningQuestion": "string",
  "subject": "string",
  "keyStage": "ks1|ks2",
  "objectives": ["string", ...],
  "slides": [
    { "title": "string", "content": "- bullet\\n- bullet", "type": "starter|main|activity|assessment|plenary",
      "notes": "string", "imageSuggestions": ["string", ...] },
    ...
  ],
  "resources": ["string", ...],
  "resourceContent": {
    "description": "string",
    "items": [
      { "title": "string", "instructions": "string", "contentText": "string",
        "tableQuestions": ["string", ...], "gapFillQuestions": ["string with ____", ...],
        "openQuestions": ["string", ...], "visualFormat": { "type": "string", "data": {} } }
    ]
  },
  "differentiation": { "support": "string", "stretch": "string" }
}
Do not include markdown fences or any prose before/after the JSON.
"""


def describe_visual_formats(subject: str) -> str:
    lines = []
    for kind in formats_for_subject(subject):
        lines.append(f'- "{kind.value}": data like {json.dumps(dict(FORMAT_TEMPLATES[kind]))}')
    return "\n".join(lines)


def build_lesson_prompt(topic: str, subject: str, key_stage: str, notes: Optional[str],
                        support_mode: bool = False) -> str:
    theme = resolve_theme(subject)
    notes_block = f'Teacher notes:\n"""{notes}"""' if notes and notes.strip() else ""
    send_hint = ("Pupils need SEND support: short sentences, simple vocabulary, "
                 "fewer questions and plenty of scaffolding.") if support_mode else ""
    return f"""
You are an experienced UK primary teacher planning a {theme.name} lesson for {key_stage.upper()} pupils.

Topic: {topic}

Goals:
- Write 2-4 clear learning objectives.
- Plan 5-8 slides: one starter, main teaching slides, an activity, an assessment check and a plenary.
- Keep slide content to short dash bullets; put extra detail in the notes.
- Suggest 0-2 image descriptions per slide.
- Plan 1-3 worksheet activities. Give each a standalone 150-300 word reading passage (contentText)
  and questions that can be answered from it.
- Where it helps, add one visualFormat to an activity using one of these types:
{describe_visual_formats(subject)}

{send_hint}

{notes_block}

{PROMPT_JSON_SPEC}
""".strip()

# ---- JSON cleaners -----------------------------------------------------------


def clean_llm_output(text: str) -> str:
    """Remove markdown fences and extract JSON block if present."""
    text = text.strip()
    text = re.sub(r"^```[a-zA-Z]*\n?", "", text)
    text = re.sub(r"```$", "", text)
    match = re.search(r"\{.*\}", text, re.DOTALL)
    if match:
        return match.group(0)
    return text


def safe_json_parse(s: str) -> Optional[LessonContent]:
    try:
        return coerce_lesson(json.loads(clean_llm_output(s)))
    except ValueError as e:
        logger.warning("Could not parse lesson JSON from model output: %s", e)
        return None

# ---- Heuristic fallback if LLM fails ----------------------------------------


def fallback_lesson(topic: str, subject: str, key_stage: str, notes: Optional[str],
                    max_chars: int = 600) -> LessonContent:
    """A plain lesson built from the teacher's notes, one slide per chunk."""
    paras = [p.strip() for p in (notes or "").split("\n") if p.strip()]
    chunks: List[str] = []
    buf = ""
    for p in paras:
        if len(buf) + len(p) + 1 > max_chars and buf:
            chunks.append(buf.strip())
            buf = ""
        buf += (" " if buf else "") + p
    if buf:
        chunks.append(buf.strip())

    slides = [SlideSpec(title=topic, type="starter", content=f"What do we already know about {topic}?")]
    for i, c in enumerate(chunks, 1):
        bullets = textwrap.wrap(c, width=80)[:6]
        slides.append(SlideSpec(title=f"{topic}: part {i}", type="main", content=bullets))
    slides.append(SlideSpec(title="What have we learned?", type="plenary",
                            content=["Share one new fact", "Ask one new question"]))
    return LessonContent(title=topic, subject=subject, key_stage=key_stage or None,
                         objectives=[f"To learn about {topic}"], slides=slides)

# ---- Post-processing: dedupe & drop empties ---------------------------------


def slide_richness(slide: SlideSpec) -> int:
    """Score slide by content amount to keep the richer duplicate."""
    return len(slide.content.strip()) + len((slide.notes or "").strip()) // 2


def clean_lesson(lesson: LessonContent) -> LessonContent:
    """Remove title-only slides and deduplicate by title (keep richer one)."""
    by_title: Dict[str, SlideSpec] = {}
    order: Dict[str, int] = {}
    for i, s in enumerate(lesson.slides):
        key = s.title.strip()
        if not key or not (s.content.strip() or (s.notes or "").strip()):
            continue
        order.setdefault(key, i)
        if key not in by_title or slide_richness(s) > slide_richness(by_title[key]):
            by_title[key] = s
    slides = sorted(by_title.values(), key=lambda s: order[s.title.strip()])
    if not slides:
        # Keep the lesson renderable even when the model returned nothing useful.
        return lesson
    return lesson.model_copy(update={"slides": slides})

# ---- Provider calls ----------------------------------------------------------


def call_openai(api_key: str, prompt: str) -> str:
    from openai import OpenAI
    client = OpenAI(api_key=api_key)
    resp = client.chat.completions.create(
        model=OPENAI_MODEL,
        messages=[{"role": "user", "content": prompt}],
        temperature=0.4,
        response_format={"type": "json_object"},
    )
    return (resp.choices[0].message.content or "").strip()


def call_anthropic(api_key: str, prompt: str) -> str:
    import anthropic
    client = anthropic.Anthropic(api_key=api_key)
    resp = client.messages.create(
        model=ANTHROPIC_MODEL,
        max_tokens=4000,
        temperature=0.4,
        messages=[{"role": "user", "content": prompt}],
    )
    return resp.content[0].text.strip()


def call_gemini(api_key: str, prompt: str) -> str:
    import google.generativeai as genai
    genai.configure(api_key=api_key)
    model = genai.GenerativeModel(GEMINI_MODEL)
    resp = model.generate_content(prompt)
    return (resp.text or "").strip()


PROVIDER_CALLS = {
    "openai": call_openai,
    "anthropic": call_anthropic,
    "gemini": call_gemini,
}

# ---- Router entrypoint -------------------------------------------------------


def plan_lesson(provider: str, api_key: str, topic: str, subject: str = "general", key_stage: str = "ks2",
                notes: Optional[str] = None, support_mode: bool = False) -> LessonContent:
    call = PROVIDER_CALLS.get((provider or "").strip().lower())
    if call is None:
        raise ValueError("Unsupported provider")

    prompt = build_lesson_prompt(topic, subject, key_stage, notes, support_mode)
    logger.info("Planning %r (%s, %s) with %s", topic, subject, key_stage, provider)
    lesson = safe_json_parse(call(api_key, prompt))
    if lesson is None:
        lesson = fallback_lesson(topic, subject, key_stage, notes)
    return clean_lesson(lesson)
