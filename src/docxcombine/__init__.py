"""docxcombine - merge several DOCX files into one, reconciling every id space."""

from .combine import combine_docx, combine_packages, encode_package
from .config import CombineOptions
from .errors import CombineError, MalformedXmlError, MissingPartError, ValidationError
from .package import Package

__all__ = [
    "CombineError",
    "CombineOptions",
    "MalformedXmlError",
    "MissingPartError",
    "Package",
    "ValidationError",
    "combine_docx",
    "combine_packages",
    "encode_package",
]
