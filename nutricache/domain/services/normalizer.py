# nutricache/domain/services/normalizer.py
"""
Question canonicalisation for cache keys.

Two paraphrases that only differ by word order, accents, punctuation or filler words
("bonjour", "le", "please", ...) must collapse onto the same key.
"""
import re
import unicodedata

_APOSTROPHES = re.compile(r"[‘’ʼ`´]")
_NON_WORD = re.compile(r"[^\w\s']")
_SPACES = re.compile(r"\s+")

# Stored accent-stripped: tokens are compared after strip_accents()
STOP_WORDS = frozenset({
    # fr: articles, prepositions, conjunctions
    "le", "la", "les", "un", "une", "des", "du", "de", "au", "aux", "l'", "d'",
    "et", "ou", "mais", "donc", "or", "ni", "car",
    "pour", "sur", "sous", "dans", "avec", "sans", "par", "entre",
    "plus", "moins", "tres", "bien", "mal",
    # fr: pronouns, determiners
    "je", "tu", "il", "elle", "nous", "vous", "ils", "elles", "on",
    "mon", "ma", "mes", "ton", "ta", "tes", "son", "sa", "ses",
    "ce", "cette", "ces", "cet", "ca",
    "me", "moi", "te", "toi", "se", "lui", "leur",
    "qui", "que", "quoi", "dont",
    "quel", "quelle", "quels", "quelles",
    "comment", "pourquoi", "quand",
    # fr: common verbs
    "est", "sont", "suis", "es", "sommes", "etes",
    "ai", "as", "avons", "avez", "ont",
    "pouvez", "pourriez", "peux", "puis",
    # fr: politeness, greetings
    "merci", "svp", "s'il", "plait", "bonjour", "bonsoir", "salut",
    # en
    "the", "an", "is", "are", "was", "were", "be", "been",
    "can", "could", "would", "should", "will", "may", "might",
    "please", "thank", "thanks", "you", "your", "my", "hello", "hi",
})


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def fold(text: str) -> str:
    """Lowercase, accent-free, straight apostrophes, single spaces."""
    folded = strip_accents(text.lower())
    folded = _APOSTROPHES.sub("'", folded)
    return _SPACES.sub(" ", folded).strip()


def normalize_question(text: str) -> str:
    """
    Canonical cache key for a question: folded, punctuation removed (apostrophes kept),
    single-char and stop-word tokens dropped, remaining tokens sorted.

    Pure and idempotent: normalize_question(normalize_question(x)) == normalize_question(x).
    """
    if not text:
        return ""
    cleaned = _NON_WORD.sub(" ", fold(text))
    tokens = [t for t in cleaned.split() if len(t) > 1 and t not in STOP_WORDS]
    return " ".join(sorted(tokens))
