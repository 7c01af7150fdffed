"""Content domain: the markdown item, its codec and path templating."""

from folio.content.codec import parse, serialize
from folio.content.models import ContentAttributes, ContentItem, Scalar, content_hash
from folio.content.paths import PathPatternResolver, default_pattern

__all__ = [
    "ContentAttributes",
    "ContentItem",
    "PathPatternResolver",
    "Scalar",
    "content_hash",
    "default_pattern",
    "parse",
    "serialize",
]
