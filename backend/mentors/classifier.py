"""
Mentor Classifier - routes a message to a mentor tag.

Pure and deterministic, no I/O. Signals are evaluated in a fixed order
and the first match wins:

    1. Attached files (automatic mode only):
       image -> chess, CSV -> stock, .txt/.pdf/.docx -> bible
    2. Scripture: book names, "verse"/"scripture"/"bible", "John 3:16"
    3. Chess: chess vocabulary or an 8-rank FEN-like token
    4. Markets: finance vocabulary or an all-caps 2-5 letter ticker
    5. general

The heuristics are deliberately simple; an all-caps word such as "USA"
routes to the markets mentor.
"""

import re
from typing import Iterable, Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .registry import DEFAULT_MENTOR_ID

SelectionMode = Literal["auto", "manual"]

_BIBLE_BOOKS = (
    "genesis|exodus|leviticus|numbers|deuteronomy|joshua|judges|ruth|samuel|kings|"
    "chronicles|ezra|nehemiah|esther|job|psalm|psalms|proverbs|ecclesiastes|"
    "song of solomon|song of songs|isaiah|jeremiah|lamentations|ezekiel|daniel|hosea|"
    "joel|amos|obadiah|jonah|micah|nahum|habakkuk|zephaniah|haggai|zechariah|malachi|"
    "matthew|mark|luke|john|acts|romans|corinthians|galatians|ephesians|philippians|"
    "colossians|thessalonians|timothy|titus|philemon|hebrews|james|peter|jude|revelation"
)
_BIBLE_BOOK_RE = re.compile(rf"\b(?:{_BIBLE_BOOKS})\b", re.IGNORECASE)
_BIBLE_WORD_RE = re.compile(r"\b(?:verse|scripture|bible)\b", re.IGNORECASE)
_SCRIPTURE_REF_RE = re.compile(r"\b(?:[1-3]\s?)?[a-zA-Z]+\s?\d{1,3}:\d{1,3}\b")

_CHESS_WORD_RE = re.compile(r"\b(?:chess|stockfish|best move|mate|checkmate|fen)\b", re.IGNORECASE)
_FEN_RANK = r"[rnbqkp1-8]+"
_FEN_RE = re.compile(rf"\b{_FEN_RANK}(?:/{_FEN_RANK}){{7}}\b", re.IGNORECASE)

_STOCK_WORD_RE = re.compile(
    r"\b(?:rsi|macd|moving average|indicator|stocks?|price|earnings)\b", re.IGNORECASE
)
_TICKER_RE = re.compile(r"\b[A-Z]{2,5}\b")

_IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp", ".svg", ".heic")
_CSV_MIME_TYPES = ("text/csv", "application/csv", "text/comma-separated-values")
_DOCUMENT_EXTENSIONS = (".txt", ".pdf", ".docx")
_DOCUMENT_MIME_TYPES = (
    "text/plain",
    "application/pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
)


class FileMeta(BaseModel):
    """Attachment metadata as sent by clients (``type`` is the MIME type)."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str
    url: Optional[str] = None
    mime_type: Optional[str] = Field(default=None, alias="type")
    size: Optional[int] = Field(default=None, ge=0)


def classify_file(file: FileMeta) -> Optional[str]:
    """Mentor signal carried by a single attachment, if any."""
    name = (file.name or "").lower()
    mime = (file.mime_type or "").lower()

    if mime.startswith("image/") or name.endswith(_IMAGE_EXTENSIONS):
        return "chess"
    if mime in _CSV_MIME_TYPES or name.endswith(".csv"):
        return "stock"
    if mime in _DOCUMENT_MIME_TYPES or name.endswith(_DOCUMENT_EXTENSIONS):
        return "bible"
    return None


def classify_files(files: Optional[Iterable[FileMeta]]) -> Optional[str]:
    """First attachment (in upload order) that carries a signal wins."""
    for file in files or ():
        signal = classify_file(file)
        if signal:
            return signal
    return None


def classify_text(text: str) -> str:
    if _BIBLE_BOOK_RE.search(text) or _BIBLE_WORD_RE.search(text) or _SCRIPTURE_REF_RE.search(text):
        return "bible"

    if _CHESS_WORD_RE.search(text) or _FEN_RE.search(text):
        return "chess"

    # Ticker match is case-sensitive on purpose
    if _STOCK_WORD_RE.search(text) or _TICKER_RE.search(text):
        return "stock"

    return DEFAULT_MENTOR_ID


def classify(text: str, files: Optional[Sequence[FileMeta]] = None) -> str:
    """Pick a mentor for a message. File signals override text signals."""
    return classify_files(files) or classify_text(text or "")


def route_mentor(
    text: str,
    files: Optional[Sequence[FileMeta]] = None,
    selection_mode: SelectionMode = "auto",
    locked_mentor_id: Optional[str] = None,
) -> str:
    """Mentor for a send: classifier output in auto mode, the locked mentor in manual mode."""
    if selection_mode == "manual" and locked_mentor_id:
        return locked_mentor_id
    return classify(text, files)
