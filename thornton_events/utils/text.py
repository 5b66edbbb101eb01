import hashlib
import re

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(value: str, max_length: int = 0) -> str:
    """'Trunk or Treat!' -> 'trunk-or-treat'. Truncation happens before trimming dashes."""
    slug = _NON_ALNUM.sub("-", (value or "").lower())
    if max_length:
        slug = slug[:max_length]
    return slug.strip("-")


def stable_uuid(seed: str) -> str:
    """
    MD5 of the seed laid out as 8-4-4-4-12. Not a real UUID version and not
    meant to be secure; it only has to be identical for identical seeds.
    """
    h = hashlib.md5(seed.encode("utf-8")).hexdigest()
    return f"{h[0:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"


def clean_html(text: str) -> str:
    text = re.sub(r"<[^>]*>", " ", text or "")
    for ent, ch in (("&nbsp;", " "), ("&amp;", "&"), ("&lt;", "<"), ("&gt;", ">"), ("&quot;", '"'), ("&#39;", "'")):
        text = text.replace(ent, ch)
    return re.sub(r"\s+", " ", text).strip()


def shorten(text: str, width: int = 40) -> str:
    text = text or ""
    return text if len(text) <= width else text[:width] + "..."
