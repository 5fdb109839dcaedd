"""Subject colour schemes shared by the deck and the worksheet.

Every table here is built once at import and never mutated; lookups are pure.
"""
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional, Tuple


@dataclass(frozen=True)
class ThemeColors:
    primary: str
    primaryDark: str
    secondary: str
    accent: str
    text: str
    textLight: str
    background: str
    highlight: str
    white: str = "FFFFFF"


@dataclass(frozen=True)
class Theme:
    key: str
    name: str
    icon: str
    colors: ThemeColors
    gradient: Tuple[str, str]


def _theme(key, name, icon, primary, primary_dark, secondary, accent, text, text_light, background, highlight,
           gradient=None):
    colors = ThemeColors(
        primary=primary,
        primaryDark=primary_dark,
        secondary=secondary,
        accent=accent,
        text=text,
        textLight=text_light,
        background=background,
        highlight=highlight,
    )
    return Theme(key=key, name=name, icon=icon, colors=colors, gradient=gradient or (primary, secondary))


SUBJECT_THEMES: Mapping[str, Theme] = MappingProxyType({
    t.key: t for t in (
        _theme("history", "History", "📜",
               "8B4513", "5D2F0A", "DAA520", "CD853F", "2C1810", "5D4E37", "F5F0E8", "FFE4B5"),
        _theme("science", "Science", "🔬",
               "2E7D32", "1B5E20", "00ACC1", "66BB6A", "1B3A1B", "4A7C4E", "F1F8E9", "A5D6A7"),
        _theme("mathematics", "Mathematics", "🔢",
               "FF6F00", "E65100", "424242", "FFA726", "212121", "616161", "FFF8E1", "FFE0B2",
               gradient=("FF6F00", "FFA726")),
        _theme("english", "English", "📚",
               "6A1B9A", "4A148C", "E91E63", "9C27B0", "311B92", "673AB7", "F3E5F5", "CE93D8"),
        _theme("geography", "Geography", "🌍",
               "0277BD", "01579B", "558B2F", "29B6F6", "01344C", "4A7A8C", "E1F5FE", "81D4FA"),
        _theme("art", "Art & Design", "🎨",
               "D32F2F", "C62828", "FFA000", "F57C00", "3E2723", "6D4C41", "FFF3E0", "FFCC80"),
        _theme("computing", "Computing", "💻",
               "1976D2", "0D47A1", "00BCD4", "42A5F5", "0D3C61", "546E7A", "E3F2FD", "90CAF9"),
        _theme("dt", "Design & Technology", "🔧",
               "607D8B", "455A64", "FF9800", "78909C", "263238", "546E7A", "ECEFF1", "FFB74D"),
        _theme("spanish", "Spanish", "🇪🇸",
               "C62828", "B71C1C", "FBC02D", "F44336", "880E4F", "C2185B", "FFF9C4", "FFEB3B"),
        _theme("pe", "Physical Education", "⚽",
               "388E3C", "2E7D32", "FFA726", "66BB6A", "1B5E20", "558B2F", "E8F5E9", "AED581"),
        _theme("music", "Music", "🎵",
               "5E35B1", "4527A0", "EC407A", "7E57C2", "311B92", "512DA8", "EDE7F6", "BA68C8"),
        _theme("general", "General", "📖",
               "4C6EF5", "3C5CE0", "35C97A", "FF6B6B", "1A1C25", "4B4E5D", "F5F7FB", "90A4FC"),
    )
})

DEFAULT_THEME_KEY = "general"

# Checked in order; the first alias contained in the subject wins.
SUBJECT_ALIASES: Tuple[Tuple[str, str], ...] = (
    ("hist", "history"),
    ("sci", "science"),
    ("math", "mathematics"),
    ("maths", "mathematics"),
    ("eng", "english"),
    ("literacy", "english"),
    ("reading", "english"),
    ("writing", "english"),
    ("geo", "geography"),
    ("design", "dt"),
    ("technology", "dt"),
    ("d&t", "dt"),
    ("art", "art"),
    ("comp", "computing"),
    ("ict", "computing"),
    ("coding", "computing"),
    ("pe", "pe"),
    ("sport", "pe"),
    ("physical", "pe"),
    ("music", "music"),
)

VISUAL_ICONS: Mapping[str, str] = MappingProxyType({
    "objectives": "🎯",
    "task": "📝",
    "keyPoint": "💡",
    "question": "❓",
    "activity": "✏️",
    "discussion": "💬",
    "reading": "📖",
    "thinking": "🤔",
    "success": "✅",
    "challenge": "⭐",
})


def normalise_subject(subject: Optional[str]) -> str:
    return (subject or "").strip().lower()


def subject_key(subject: Optional[str]) -> str:
    """Map a free-text subject onto one of the SUBJECT_THEMES keys."""
    normalised = normalise_subject(subject)
    if not normalised:
        return DEFAULT_THEME_KEY
    if normalised in SUBJECT_THEMES:
        return normalised
    for alias, key in SUBJECT_ALIASES:
        if alias in normalised:
            return key
    return DEFAULT_THEME_KEY


def resolve_theme(subject: Optional[str]) -> Theme:
    """Return the theme for a subject; never fails, falls back to "general"."""
    return SUBJECT_THEMES[subject_key(subject)]
