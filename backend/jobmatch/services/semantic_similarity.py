import hashlib
import math
import re
from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal

from ..utils.error_handlers import DimensionMismatch

# Canonical persistence threshold. Readers may filter harder, never softer.
MATCH_THRESHOLD = 0.70

_WS_RE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    t = (text or "").strip()
    t = _WS_RE.sub(" ", t)
    return t


def text_hash(*, text: str, model: str | None = None) -> str:
    """
    sha256 hex digest used only for change detection.

    When a model name is given it is folded into the digest so switching models
    invalidates every stored vector.
    """
    blob = f"{model}\n{text}" if model else text
    return hashlib.sha256(blob.encode("utf-8", errors="ignore")).hexdigest()


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b):
        raise DimensionMismatch(len(a), len(b))
    dot = 0.0
    na = 0.0
    nb = 0.0
    for x, y in zip(a, b):
        dot += x * y
        na += x * x
        nb += y * y
    if na <= 0.0 or nb <= 0.0:
        return 0.0
    return float(dot / (math.sqrt(na) * math.sqrt(nb)))


def clamp_similarity(sim: float) -> float:
    # Float noise can push cos(v, v) a hair above 1.
    if sim < 0.0:
        return 0.0
    if sim > 1.0:
        return 1.0
    return float(sim)


def to_match_score(sim: float) -> int:
    # Half-up on the decimal value, so 0.755 -> 76 regardless of binary representation.
    score = int((Decimal(str(float(sim))) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if score < 0:
        return 0
    if score > 100:
        return 100
    return score


def meets_threshold(sim: float) -> bool:
    return sim >= MATCH_THRESHOLD
