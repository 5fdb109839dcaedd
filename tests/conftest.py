"""Shared fixtures: a small but complete lesson and generated test images."""
import base64
from io import BytesIO
from pathlib import Path
from typing import Any, Dict

import pytest
from PIL import Image


def make_png(path: Path, size=(64, 48), color=(200, 40, 40)) -> Path:
    Image.new("RGB", size, color).save(path, format="PNG")
    return path


@pytest.fixture
def make_image():
    return make_png


@pytest.fixture
def png_path(tmp_path: Path) -> Path:
    return make_png(tmp_path / "picture.png")


@pytest.fixture
def png_data_uri() -> str:
    buf = BytesIO()
    Image.new("RGB", (32, 32), (10, 120, 200)).save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


@pytest.fixture
def sample_lesson() -> Dict[str, Any]:
    return {
        "title": "Living Things and Their Habitats",
        "learningQuestion": "Why do animals live where they do?",
        "subject": "Science",
        "keyStage": "KS2",
        "objectives": [
            "Students will be able to name three habitats",
            "Understand how animals adapt",
        ],
        "slides": [
            {"title": "Hook", "type": "starter", "content": "What is a habitat?"},
            {"title": "Habitats", "type": "main",
             "content": "- Woodland\n- Pond\n- Desert", "notes": "Ask for local examples."},
            {"title": "Quiz", "type": "assessment", "content": "Match each animal to its home."},
        ],
        "resources": ["Habitat picture cards", "Mini whiteboards"],
        "resourceContent": {
            "description": "Habitat worksheet",
            "items": [
                {
                    "title": "Reading about ponds",
                    "instructions": "Read the passage and answer the questions.",
                    "contentText": "A pond is a small area of still water.\nFrogs, newts and insects live there.",
                    "tableQuestions": ["What is a pond?", "Name one pond animal."],
                    "gapFillQuestions": ["Frogs lay ____ in spring."],
                    "openQuestions": ["Why might a pond dry up?"],
                    "visualFormat": {"type": "resultsTable", "data": {"rows": 5}},
                },
            ],
        },
        "differentiation": {"support": "Use picture cards.", "stretch": "Compare two habitats."},
    }
