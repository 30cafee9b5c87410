# sangh_api/utils/moderation.py
from __future__ import annotations

import logging
import re
import unicodedata
from typing import Dict, Optional

from better_profanity import profanity
from unidecode import unidecode

logger = logging.getLogger(__name__)

profanity.load_censor_words()

# common digit/symbol swaps used to slip words past the filter
LEET = str.maketrans({"0": "o", "1": "i", "!": "i", "3": "e", "4": "a", "@": "a", "5": "s", "7": "t", "$": "s"})


def _normalize(text: str) -> str:
    t = unidecode(unicodedata.normalize("NFKD", text.lower())).translate(LEET)
    t = re.sub(r"(.)\1{2,}", r"\1\1", t)
    return re.sub(r"\s+", " ", re.sub(r"[^a-z0-9\s]", "", t)).strip()


def moderate_text(text: Optional[str]) -> Dict:
    """Censored copy plus whether the normalized text trips the word list."""
    text = text or ""
    return {
        "cleaned": profanity.censor(text, censor_char="*"),
        "flagged": profanity.contains_profanity(_normalize(text)),
    }


def clean_text(text: Optional[str]) -> str:
    """Censored copy of user text for captions, comments and replies."""
    if not text:
        return ""
    result = moderate_text(text)
    if result["flagged"]:
        logger.info("Profanity censored in user text")
    return result["cleaned"]
