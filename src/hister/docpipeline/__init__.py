"""Document normalization pipeline: screening, URL cleanup, extraction, favicons."""

from hister.docpipeline.extractors import DefaultExtractor, Extraction, Extractor, ReadabilityExtractor
from hister.docpipeline.favicon import FaviconResolver
from hister.docpipeline.processor import DocumentProcessor
from hister.docpipeline.sensitive import SensitiveContentMatcher
from hister.docpipeline.urls import canonicalize_url, full_url


__all__ = [
    "DefaultExtractor",
    "DocumentProcessor",
    "Extraction",
    "Extractor",
    "FaviconResolver",
    "ReadabilityExtractor",
    "SensitiveContentMatcher",
    "canonicalize_url",
    "full_url",
]
