from draftdesk.content.exceptions import DocumentFormatError
from draftdesk.content.models import RewriteResult, RichNode, UnresolvedReference
from draftdesk.content.parser import build_document, document_to_dict
from draftdesk.content.rewriter import extract_image_sources, placeholder_url, rewrite

__all__ = [
    "DocumentFormatError",
    "RewriteResult",
    "RichNode",
    "UnresolvedReference",
    "build_document",
    "document_to_dict",
    "extract_image_sources",
    "placeholder_url",
    "rewrite",
]
