import re
import posixpath
from typing import Optional, Tuple

from cwv_findings.core.types import Finding

TYPE_IMAGE_SIZING = "image-sizing"
TYPE_UNUSED_CODE = "unused-code"
TYPE_FONT_FORMAT = "font-format"
TYPE_FONT_PRELOAD = "font-preload"
TYPE_RESOURCE_PRELOAD = "resource-preload"
TYPE_RESOURCE_HINTS = "resource-hints"
TYPE_BLOCKING_RESOURCE = "blocking-resource"
TYPE_INLINE_CSS = "inline-css"
TYPE_LAYOUT_SHIFT = "layout-shift"
TYPE_UNKNOWN = "unknown"

# Ordered rules: (semantic type, groups that must each match one term, excluded terms).
# First matching rule wins.
CLASSIFICATION_RULES: Tuple[Tuple[str, Tuple[Tuple[str, ...], ...], Tuple[str, ...]], ...] = (
    (TYPE_IMAGE_SIZING, (("missing width", "missing height", "unsized image", "image dimension"),), ()),
    (TYPE_UNUSED_CODE, (("unused",), ("css", "code", "javascript")), ()),
    (TYPE_FONT_FORMAT, (("font",), ("format", "woff2", "ttf")), ()),
    (TYPE_FONT_PRELOAD, (("font",), ("preload",)), ()),
    (TYPE_RESOURCE_PRELOAD, (("preload",),), ("font",)),
    (TYPE_RESOURCE_HINTS, (("preconnect", "dns-prefetch"),), ()),
    (TYPE_BLOCKING_RESOURCE, (("render-blocking", "blocking resource"),), ()),
    (TYPE_INLINE_CSS, (("inline",), ("css",)), ()),
    (TYPE_LAYOUT_SHIFT, (("layout shift", "cumulative layout"),), ()),
)

FILE_EXTENSIONS = r"js|mjs|css|woff2?|ttf|jpe?g|png|webp|avif|gif|svg|html"
# Path-like token ending in a known resource extension (query strings ignored)
FILE_REFERENCE_PATTERN = re.compile(
    rf"((?:https?://)?[A-Za-z0-9_./@~-]*?[A-Za-z0-9_@~-]+\.(?:{FILE_EXTENSIONS}))(?![A-Za-z0-9])",
    re.IGNORECASE,
)


def _classify_text(text: str) -> str:
    for semantic_type, groups, excluded in CLASSIFICATION_RULES:
        if any(term in text for term in excluded):
            continue
        if all(any(term in text for term in group) for group in groups):
            return semantic_type
    return TYPE_UNKNOWN


def classify(finding: Finding) -> str:
    """Tag a finding with a semantic type. Total: falls back to 'unknown'."""
    semantic_type = _classify_text((finding.description or "").lower())
    if semantic_type == TYPE_UNKNOWN:
        semantic_type = _classify_text(finding.reference.lower())
    return semantic_type


def extract_file_reference(text: Optional[str]) -> Optional[str]:
    """First resource path mentioned in text, lower-cased, with any scheme and host removed."""
    if not text:
        return None
    match = FILE_REFERENCE_PATTERN.search(text)
    if not match:
        return None
    reference = match.group(1).lower()
    if "://" in reference:
        reference = reference.split("://", 1)[1]
        reference = reference.split("/", 1)[1] if "/" in reference else reference
    return reference.lstrip("./") or None


def extract_file_name(text: Optional[str]) -> Optional[str]:
    """Base name of the first resource referenced in text (e.g. 'app.js')."""
    reference = extract_file_reference(text)
    if reference is None:
        return None
    return posixpath.basename(reference) or None
