import re
import unicodedata
from typing import Iterable

# Vietnamese-only letters; plain circumflex vowels are shared with Portuguese and French.
VIETNAMESE_LETTERS = set("ăđơưạảấầẩẫậắằẳẵặẹẻẽếềểễệỉịọỏốồổỗộớờởỡợụủứừửữựỳỵỷỹ")


def normalize_text(text: str) -> str:
    """Purpose: Normalize free-form text for stable keyword matching.
    Inputs/Outputs: Input is a raw string; output is a lowercase ASCII-only string with
        diacritics removed and whitespace collapsed.
    Side Effects / State: None; pure function.
    Dependencies: Uses unicodedata and regex; called by the fallback advisor.
    Failure Modes: Returns an empty string when input is falsy.
    If Removed: Keyword checks miss accented input such as "sách".
    Testing Notes: Validate "Sách khoa học" becomes "sach khoa hoc".
    """
    # Normalize to lowercase and strip diacritics for consistent matching.
    if not text:
        return ""
    lowered = text.lower().replace("đ", "d")
    decomposed = unicodedata.normalize("NFD", lowered)
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    cleaned = re.sub(r"[^a-z0-9\s$]+", " ", stripped)
    return re.sub(r"\s+", " ", cleaned).strip()


def detect_locale(text: str) -> str:
    """Return "vi" when the text contains Vietnamese-only letters, otherwise "en"."""
    lowered = (text or "").lower()
    if any(ch in VIETNAMESE_LETTERS for ch in lowered):
        return "vi"
    return "en"


def has_any_term(normalized: str, terms: Iterable[str]) -> bool:
    """Match whole words or phrases against already-normalized text."""
    padded = f" {normalized} "
    return any(f" {term} " in padded for term in terms)
