"""
Color/size derivation for Printful variants.

Printful does not reliably send `color`/`size` on sync variants. Lookup order:

1. Direct fields on the variant (or its nested catalog `product`).
2. `{id, value}` pairs in the `options` array.
3. Trailing " / "-separated segments of the variant name, e.g.
   "Classic Tee / Black / M".
"""
import re

from models import OptionKey, VariantOptions

SIZE_PATTERN = re.compile(
    r"^(xxs|xs|s|m|l|xl|2xl|3xl|4xl|5xl|6xl|xxl|xxxl|one size|one-size|small|medium|large|x-large|xx-large)$",
    re.IGNORECASE,
)
MEASURE_PATTERN = re.compile(r"^\d+(\.\d+)?\s*(oz|ml|in|inch|cm|mm|\")$", re.IGNORECASE)
DIMENSION_PATTERN = re.compile(r"^\d+(\.\d+)?\s*[\"″]?\s*[x×]\s*\d+(\.\d+)?\s*[\"″]?$", re.IGNORECASE)

_OPTION_ALIASES = {
    "color": OptionKey.COLOR,
    "colour": OptionKey.COLOR,
    "size": OptionKey.SIZE,
}


def is_size_token(token) -> bool:
    token = (token or "").strip()
    if not token:
        return False
    return bool(SIZE_PATTERN.match(token) or MEASURE_PATTERN.match(token) or DIMENSION_PATTERN.match(token))


def parse_name_options(name):
    """
    Pull (color, size) out of a slash-delimited variant name.

    "Tee / Black / M" -> ("Black", "M"); "Tee / Black" -> ("Black", None);
    "Mug / 11 oz" -> (None, "11 oz"). Names without a slash yield (None, None).
    """
    parts = [p.strip() for p in (name or "").split("/")]
    if len(parts) < 2:
        return None, None
    trailing = [p for p in parts[1:] if p]
    if not trailing:
        return None, None

    if is_size_token(trailing[-1]):
        size = trailing[-1]
        color = trailing[-2] if len(trailing) >= 2 else None
        return color, size
    return trailing[-1], None


def _direct(variant, key):
    value = variant.get(key)
    if not value and isinstance(variant.get("product"), dict):
        value = variant["product"].get(key)
    if isinstance(value, str):
        value = value.strip()
    return value or None


def derive_options(variant) -> VariantOptions:
    options = VariantOptions()

    for key in OptionKey:
        value = _direct(variant, key.value)
        if value:
            options.values[key] = value

    for raw in variant.get("options") or []:
        if not isinstance(raw, dict):
            continue
        option_id = str(raw.get("id") or "").strip().lower()
        value = raw.get("value")
        known = _OPTION_ALIASES.get(option_id)
        if known is None:
            if option_id:
                options.unrecognized[option_id] = value
            continue
        if known not in options.values and isinstance(value, str) and value.strip():
            options.values[known] = value.strip()

    if OptionKey.COLOR not in options.values or OptionKey.SIZE not in options.values:
        color, size = parse_name_options(variant.get("name"))
        if color and OptionKey.COLOR not in options.values:
            options.values[OptionKey.COLOR] = color
        if size and OptionKey.SIZE not in options.values:
            options.values[OptionKey.SIZE] = size

    return options
