import re

SLUG_MAX_LENGTH = 40
NAMESPACE_PREFIX = "store-"

_DISALLOWED = re.compile(r"[^a-z0-9\s-]")
_SEPARATORS = re.compile(r"[\s-]+")


def slugify(name: str) -> str:
    slug = _DISALLOWED.sub("", name.lower().strip())
    slug = _SEPARATORS.sub("-", slug).strip("-")
    # Truncation can expose a trailing hyphen.
    return slug[:SLUG_MAX_LENGTH].rstrip("-")


def namespace_for(slug: str) -> str:
    return f"{NAMESPACE_PREFIX}{slug}"
