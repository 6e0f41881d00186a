"""Lumina line items → tactic buckets (product + subProduct)."""

import re

_FILLER_RE = re.compile(r"\s+|\b(?:with|and)\b")
_UNSAFE_RE = re.compile(r"[^a-zA-Z0-9_-]")

TACTIC_DESCRIPTIONS = {
    "Blended Tactics": "Multi-platform advertising approach",
    "Addressable Solutions": "Targeted advertising solutions",
    "Facebook": "Facebook advertising campaigns",
    "Instagram": "Instagram marketing and advertising",
    "Google": "Google advertising and search marketing",
    "LinkedIn": "Professional network advertising",
    "Display": "Display advertising campaigns",
    "Search": "Search engine marketing",
    "Video": "Video advertising campaigns",
    "Social": "Social media marketing",
}

DEFAULT_TACTIC = {
    "name": "Display-Advertising",
    "platform": "Display",
    "subProduct": "Advertising",
    "description": "Display advertising campaigns",
    "lineItemCount": 1,
    "tacticSpecial": "",
}


def tactic_name(product: str, sub_product: str) -> str:
    """'Addressable Solutions' + 'Display with Retargeting' → 'AddressableSolutions-DisplayRetargeting'."""
    name = _FILLER_RE.sub("", product)
    if sub_product:
        name += "-" + _FILLER_RE.sub("", sub_product)
    return _UNSAFE_RE.sub("", name).strip("-")


def describe_tactic(product: str, sub_product: str) -> str:
    if product in TACTIC_DESCRIPTIONS:
        return TACTIC_DESCRIPTIONS[product]
    if sub_product in TACTIC_DESCRIPTIONS:
        return TACTIC_DESCRIPTIONS[sub_product]
    return f"Marketing campaigns for {product}" + (f" - {sub_product}" if sub_product else "")


def detect_tactics(line_items: list[dict] | None) -> dict:
    """Group line items into tactic buckets; no line items yields the default display tactic."""
    buckets: dict[str, dict] = {}
    items = [i for i in (line_items or []) if isinstance(i, dict)]
    for item in items:
        product = item.get("product")
        product = "Unknown" if isinstance(product, list) or not product else str(product)
        sub_product = item.get("subProduct")
        sub_product = "" if isinstance(sub_product, list) or not sub_product else str(sub_product)
        special = item.get("tacticTypeSpecial") or ""
        if isinstance(special, list):
            special = ",".join(str(s) for s in special)

        name = tactic_name(product, sub_product)
        bucket = buckets.setdefault(name, {
            "name": name,
            "platform": product,
            "subProduct": sub_product,
            "description": describe_tactic(product, sub_product),
            "lineItemCount": 0,
            "tacticSpecial": special,
        })
        bucket["lineItemCount"] += 1

    tactics = list(buckets.values()) or [dict(DEFAULT_TACTIC)]
    return {
        "tactics": tactics,
        "totalTactics": len(tactics),
        "totalLineItems": len(items),
    }
