"""
Pattern-based weight estimation from a product title (and optional URL/hints).

Rules are static tables defined here, optionally extended once when the
estimator is constructed.  Nothing is written per request, so the estimator
never grows a per-product record store.

Tiers, most specific first (confidence never increases as specificity drops):

  stated weight   "Dumbbell 2.5 kg", "Coffee beans 500g"         0.95
  product model   exact known model in the title                 0.90
                  near-exact (fuzzy) model match                 0.85
  category        product-type keyword or category keywords,
                  scaled by material / size / brand / pack       0.60 – 0.75
  generic         no category, but some modifier or retailer
                  signal fired                                   0.40

If nothing fires the estimator returns ``None``; that is a normal outcome.
"""

from __future__ import annotations

import logging
import re
from types import MappingProxyType
from typing import Mapping
from urllib.parse import urlparse

from fuzzywuzzy import fuzz, process

from .models import CandidateSource, WeightCandidate
from .normalize import parse_stated_weight, tokenize

logger = logging.getLogger(__name__)

STATED_CONFIDENCE = 0.95
MODEL_CONFIDENCE = 0.9
NEAR_MODEL_CONFIDENCE = 0.85
CATEGORY_CONFIDENCE = 0.6
PRODUCT_TYPE_CONFIDENCE = 0.65
CATEGORY_CONFIDENCE_CAP = 0.75
MODIFIER_CONFIDENCE_STEP = 0.05
GENERIC_CONFIDENCE = 0.4
GENERIC_WEIGHT = 0.5

MIN_WEIGHT_KG = 0.05
MAX_WEIGHT_KG = 50.0
MAX_PACK_COUNT = 100

# ── Known product models (kg, unboxed) ───────────────────────────────────────

PRODUCT_MODELS: dict[str, float] = {
    "iphone 15 pro max": 0.221,
    "iphone 15 pro": 0.187,
    "iphone 15": 0.171,
    "iphone 14": 0.172,
    "iphone 13": 0.174,
    "galaxy s24": 0.167,
    "pixel 8": 0.187,
    "macbook air": 1.24,
    "macbook pro 13": 1.4,
    "macbook pro 16": 2.0,
    "ipad air": 0.458,
    "ipad pro": 0.682,
    "apple watch": 0.04,
    "airpods": 0.038,
    "kindle": 0.19,
    "nintendo switch": 0.297,
    "ps5": 4.5,
    "ps5 controller": 0.28,
    "xbox series x": 4.45,
    "xbox controller": 0.28,
}

# Words that make a title describe an accessory *for* a model, not the model.
ACCESSORY_WORDS = frozenset(
    {"case", "cover", "charger", "cable", "protector", "strap", "band", "stand",
     "mount", "holder", "skin", "adapter", "sleeve"}
)

# ── Product types: keyword → (category, typical kg) ──────────────────────────

PRODUCT_TYPES: dict[str, tuple[str, float]] = {
    # electronics
    "smartphone": ("electronics", 0.19),
    "laptop": ("electronics", 2.0),
    "tablet": ("electronics", 0.5),
    "smartwatch": ("electronics", 0.05),
    "headphones": ("electronics", 0.3),
    "earbuds": ("electronics", 0.05),
    "charger": ("electronics", 0.1),
    "power bank": ("electronics", 0.3),
    "phone case": ("electronics", 0.05),
    "case": ("electronics", 0.05),
    "cover": ("electronics", 0.05),
    "screen protector": ("electronics", 0.01),
    "cable": ("electronics", 0.05),
    "mouse": ("electronics", 0.1),
    "keyboard": ("electronics", 0.8),
    "webcam": ("electronics", 0.15),
    "bluetooth speaker": ("electronics", 0.6),
    "camera": ("electronics", 0.6),
    "monitor": ("electronics", 5.0),
    # clothing
    "t-shirt": ("clothing", 0.2),
    "shirt": ("clothing", 0.25),
    "jeans": ("clothing", 0.6),
    "jacket": ("clothing", 0.8),
    "dress": ("clothing", 0.4),
    "hoodie": ("clothing", 0.5),
    "sweater": ("clothing", 0.5),
    # footwear
    "shoes": ("footwear", 0.8),
    "sneakers": ("footwear", 0.6),
    "boots": ("footwear", 1.2),
    "sandals": ("footwear", 0.4),
    # books
    "book": ("books", 0.3),
    "paperback": ("books", 0.2),
    "hardcover": ("books", 0.5),
    "textbook": ("books", 0.8),
    "magazine": ("books", 0.1),
    # beauty
    "perfume": ("beauty", 0.15),
    "shampoo": ("beauty", 0.4),
    "lipstick": ("beauty", 0.02),
    "foundation": ("beauty", 0.05),
    "moisturizer": ("beauty", 0.2),
    "soap": ("beauty", 0.1),
    "lotion": ("beauty", 0.3),
    # home
    "coffee mug": ("home", 0.3),
    "water bottle": ("home", 0.2),
    "kitchen knife": ("home", 0.15),
    "cutting board": ("home", 0.8),
    "blender": ("home", 2.5),
    "toaster": ("home", 3.0),
    # toys
    "lego set": ("toys", 0.5),
    "action figure": ("toys", 0.1),
    "board game": ("toys", 1.0),
    "puzzle": ("toys", 0.6),
    # jewelry
    "necklace": ("jewelry", 0.03),
    "bracelet": ("jewelry", 0.03),
    "earrings": ("jewelry", 0.01),
}

# ── Categories ────────────────────────────────────────────────────────────────

CATEGORY_WEIGHTS: dict[str, float] = {
    "electronics": 1.0,
    "clothing": 0.5,
    "footwear": 0.8,
    "books": 0.3,
    "beauty": 0.1,
    "toys": 0.8,
    "home": 2.0,
    "sports": 2.5,
    "jewelry": 0.05,
    "food": 1.0,
    "health": 0.2,
    "automotive": 5.0,
}

# Checked in order; first hit wins.
_CATEGORY_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("electronics", re.compile(
        r"\b(iphone|samsung|computer|phone|mobile|electronics?|gadget|usb|wireless|bluetooth|speaker)\b")),
    ("footwear", re.compile(r"\b(shoe|footwear|trainer|loafer|slipper)s?\b")),
    ("clothing", re.compile(
        r"\b(clothing|apparel|fashion|pants|trousers|skirt|shorts|blouse|cotton|polyester|kurta|saree)\b")),
    ("books", re.compile(r"\b(novel|guide|manual|author|isbn|pages|edition)\b")),
    ("beauty", re.compile(
        r"\b(cologne|makeup|conditioner|cream|beauty|cosmetics?|skincare|serum)\b")),
    ("toys", re.compile(r"\b(toys?|game|doll|figure|lego|kids|children)\b")),
    ("home", re.compile(
        r"\b(home|kitchen|home-kitchen|furniture|decor|lamp|pillow|blanket|curtain|appliance|cookware)\b")),
    ("sports", re.compile(
        r"\b(sports?|fitness|gym|exercise|ball|athletic|outdoor|bike|dumbbell|yoga)\b")),
    ("jewelry", re.compile(r"\b(jewelry|jewellery|ring|pendant|gold|silver|diamond)\b")),
    ("food", re.compile(r"\b(food|snack|coffee|tea|chocolate|spices?|grocery)\b")),
    ("health", re.compile(r"\b(health|vitamins?|supplements?|capsules)\b")),
    ("automotive", re.compile(r"\b(automotive|car|tyre|tire|motorcycle)\b")),
]

# ── Modifiers ─────────────────────────────────────────────────────────────────

MATERIAL_FACTORS: dict[str, float] = {
    "metal": 1.5, "steel": 1.5, "iron": 1.8, "cast": 1.8, "solid": 1.3, "glass": 1.4,
    "ceramic": 1.4, "wood": 1.3, "wooden": 1.3, "marble": 2.0, "stone": 2.0, "leather": 1.2,
    "plastic": 0.7, "paper": 0.6, "foam": 0.5, "fabric": 0.8, "silicone": 0.8,
    "nylon": 0.7, "lightweight": 0.6, "aluminium": 0.9, "aluminum": 0.9,
}

PORTABLE_WORDS = frozenset({"portable", "travel", "mini", "compact", "pocket", "handheld"})
PORTABLE_FACTOR = 0.7

SIZE_FACTORS: dict[str, float] = {
    "xs": 0.6, "extra small": 0.6,
    "s": 0.8, "small": 0.8,
    "m": 1.0, "medium": 1.0,
    "l": 1.3, "large": 1.3,
    "xl": 1.6, "extra large": 1.6,
    "xxl": 2.0, "2xl": 2.0, "xxxl": 2.3, "3xl": 2.3,
}
# Single letters only count after the word "size" or as an explicit hint.
_SIZE_WORDS = ("extra small", "extra large", "xxxl", "3xl", "xxl", "2xl", "xl", "xs",
               "small", "medium", "large")

BRAND_FACTORS: dict[str, float] = {
    "apple": 0.8,
    "samsung": 0.9,
    "sony": 1.1,
    "nike": 0.7,
    "adidas": 0.8,
    "lego": 1.5,
    "dell": 1.1,
}

RETAILER_DOMAINS = ("amazon", "flipkart", "ebay", "aliexpress", "alibaba", "walmart", "bestbuy", "target")

_PACK_RE = re.compile(
    r"\b(?:pack|set|box|bundle|lot) of (\d+)\b|\b(\d+)\s*-?\s*(?:pack|pcs|pieces|count|ct)\b"
)
_SIZE_PHRASE_RE = re.compile(r"\bsize\s+([a-z0-9]+)\b")


def _phrase_re(phrase: str) -> re.Pattern[str]:
    # Optional plural "s" so "sneaker" finds "sneakers" and vice versa.
    stem = phrase[:-1] if phrase.endswith("s") and not phrase.endswith("ss") else phrase
    return re.compile(rf"(?<![\w-]){re.escape(stem)}s?(?![\w-])")


def _pack_count(text: str) -> int:
    m = _PACK_RE.search(text)
    if not m:
        return 1
    count = int(m.group(1) or m.group(2))
    return max(1, min(count, MAX_PACK_COUNT))


def _url_parts(url: str | None) -> tuple[str, list[str]]:
    """Return (hostname, path tokens) for a product URL; empty on bad input."""
    if not url:
        return "", []
    try:
        parsed = urlparse(url if "://" in url else f"https://{url}")
    except ValueError:
        logger.debug("Could not parse URL %r", url)
        return "", []
    return (parsed.hostname or "").lower(), tokenize(parsed.path.replace("/", " "))


class PatternEstimator:
    """Estimate an item's weight from its title with static, ordered rules."""

    def __init__(
        self,
        product_models: Mapping[str, float] | None = None,
        near_match_threshold: int = 90,
    ):
        models = {" ".join(tokenize(k)): float(v) for k, v in PRODUCT_MODELS.items()}
        for key, weight in (product_models or {}).items():
            models[" ".join(tokenize(key))] = float(weight)
        self._models: Mapping[str, float] = MappingProxyType(models)
        # Longest first so "iphone 15 pro max" beats "iphone 15".
        self._model_keys = sorted(models, key=len, reverse=True)
        self._model_res = {k: re.compile(rf"(?<![\w-]){re.escape(k)}(?![\w-])") for k in models}
        self._type_keys = sorted(PRODUCT_TYPES, key=len, reverse=True)
        self._type_res = {k: _phrase_re(k) for k in PRODUCT_TYPES}
        self._near_match_threshold = near_match_threshold

    # ── public ───────────────────────────────────────────────────────────────

    def estimate(
        self,
        name: str,
        hints: Mapping[str, str] | None = None,
        url: str | None = None,
    ) -> WeightCandidate | None:
        """Return a pattern candidate, or ``None`` when no rule fires."""
        tokens = tokenize(name)
        if not tokens:
            return None
        text = " ".join(tokens)
        hints = {k: str(v).strip().lower() for k, v in (hints or {}).items() if v}
        pack = _pack_count(text)

        stated = parse_stated_weight(name)
        if stated is not None and not MIN_WEIGHT_KG <= stated[0] <= MAX_WEIGHT_KG:
            logger.debug("Ignoring implausible stated weight %r in %r", stated[1], name)
            stated = None
        if stated is not None:
            kg, matched = stated
            reasons = [f"Stated weight '{matched}' in title"]
            if pack > 1:
                kg *= pack
                reasons.append(f"Pack of {pack}")
            return self._candidate(kg, STATED_CONFIDENCE, reasons)

        is_accessory = any(t in ACCESSORY_WORDS for t in tokens)
        if not is_accessory:
            model = self._match_model(text)
            if model is not None:
                key, weight, confidence, how = model
                reasons = [f"{how} product model '{key}' ({weight} kg)"]
                if pack > 1:
                    weight *= pack
                    reasons.append(f"Pack of {pack}")
                return self._candidate(weight, confidence, reasons)

        host, path_tokens = _url_parts(url)
        factors, reasons = self._modifiers(tokens, text, hints, host, path_tokens)
        if pack > 1:
            factors.append(float(pack))
            reasons.append(f"Pack of {pack}")

        base = self._category_base(text, hints, path_tokens)
        if base is not None:
            weight, confidence, base_reason, _ = base
            confidence = min(
                CATEGORY_CONFIDENCE_CAP, confidence + MODIFIER_CONFIDENCE_STEP * len(factors)
            )
            for f in factors:
                weight *= f
            return self._candidate(weight, confidence, [base_reason] + reasons)

        retailer = next((d for d in RETAILER_DOMAINS if d in host), None)
        if factors or retailer:
            weight = GENERIC_WEIGHT
            for f in factors:
                weight *= f
            if retailer:
                reasons.append(f"Listed on {retailer}")
            return self._candidate(
                weight, GENERIC_CONFIDENCE, [f"Generic default {GENERIC_WEIGHT} kg"] + reasons
            )

        logger.debug("No estimator rule fired for %r", name)
        return None

    def detect_category(self, name: str, url: str | None = None) -> str | None:
        _, path_tokens = _url_parts(url)
        base = self._category_base(" ".join(tokenize(name)), {}, path_tokens)
        return base[3] if base is not None else None

    # ── rules ────────────────────────────────────────────────────────────────

    def _match_model(self, text: str) -> tuple[str, float, float, str] | None:
        for key in self._model_keys:
            if self._model_res[key].search(text):
                return key, self._models[key], MODEL_CONFIDENCE, "Exact"

        best = process.extractOne(text, self._model_keys, scorer=fuzz.token_sort_ratio)
        if best is not None:
            key, score = best[0], best[1]
            if score >= self._near_match_threshold:
                logger.debug("Near-exact model match %r → %r (score %s)", text, key, score)
                return key, self._models[key], NEAR_MODEL_CONFIDENCE, f"Near-exact ({score}%)"
        return None

    def _category_base(
        self, text: str, hints: Mapping[str, str], path_tokens: list[str]
    ) -> tuple[float, float, str, str] | None:
        for key in self._type_keys:
            if self._type_res[key].search(text):
                category, weight = PRODUCT_TYPES[key]
                reason = f"Product type '{key}' ({category}) {weight} kg"
                return weight, PRODUCT_TYPE_CONFIDENCE, reason, category

        hinted = hints.get("category")
        if hinted in CATEGORY_WEIGHTS:
            weight = CATEGORY_WEIGHTS[hinted]
            reason = f"Category '{hinted}' from hint, average {weight} kg"
            return weight, CATEGORY_CONFIDENCE, reason, hinted

        haystack = " ".join([text] + path_tokens)
        for category, pattern in _CATEGORY_PATTERNS:
            if pattern.search(haystack):
                weight = CATEGORY_WEIGHTS[category]
                reason = f"Category '{category}' detected, average {weight} kg"
                return weight, CATEGORY_CONFIDENCE, reason, category
        return None

    def _modifiers(
        self,
        tokens: list[str],
        text: str,
        hints: Mapping[str, str],
        host: str,
        path_tokens: list[str],
    ) -> tuple[list[float], list[str]]:
        factors: list[float] = []
        reasons: list[str] = []

        material = hints.get("material")
        if material not in MATERIAL_FACTORS:
            material = next((t for t in tokens if t in MATERIAL_FACTORS), None)
        if material is not None:
            factors.append(MATERIAL_FACTORS[material])
            reasons.append(f"Material '{material}' ×{MATERIAL_FACTORS[material]}")

        if any(t in PORTABLE_WORDS for t in tokens):
            factors.append(PORTABLE_FACTOR)
            reasons.append(f"Portable/compact ×{PORTABLE_FACTOR}")

        size = self._size(text, hints)
        if size is not None:
            factors.append(SIZE_FACTORS[size])
            reasons.append(f"Size '{size}' ×{SIZE_FACTORS[size]}")

        brand = hints.get("brand")
        if brand not in BRAND_FACTORS:
            brand = next(
                (t for t in tokens + path_tokens if t in BRAND_FACTORS),
                next((b for b in BRAND_FACTORS if b in host), None),
            )
        if brand is not None:
            factors.append(BRAND_FACTORS[brand])
            reasons.append(f"Brand '{brand}' ×{BRAND_FACTORS[brand]}")

        return factors, reasons

    @staticmethod
    def _size(text: str, hints: Mapping[str, str]) -> str | None:
        hinted = hints.get("size")
        if hinted in SIZE_FACTORS:
            return hinted
        m = _SIZE_PHRASE_RE.search(text)
        if m and m.group(1) in SIZE_FACTORS:
            return m.group(1)
        for word in _SIZE_WORDS:
            if re.search(rf"(?<![\w-]){re.escape(word)}(?![\w-])", text):
                return word
        return None

    @staticmethod
    def _candidate(weight: float, confidence: float, reasons: list[str]) -> WeightCandidate:
        bounded = max(MIN_WEIGHT_KG, min(MAX_WEIGHT_KG, weight))
        if bounded != weight:
            reasons.append(f"Clamped to {bounded} kg")
        return WeightCandidate(
            source=CandidateSource.PATTERN,
            value=round(bounded, 3),
            confidence=round(confidence, 3),
            rationale="; ".join(reasons),
        )
