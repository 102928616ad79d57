from .pdf_document import PDFDocument, PDFPage, PageKey
from .options import (
    SplitMode, MergeMode, CompressionLevel, ImageFormat, ColorMode, SortOrder,
    PageRange, SplitOptions, MergeOptions, CompressOptions, ImageExtractionOptions,
    OrganizeOptions, ProtectOptions, UnlockOptions, WatermarkOptions
)
from .results import Artifact, AssemblyOutput, OperationResult, PDF_MEDIA_TYPE, ZIP_MEDIA_TYPE

__all__ = [
    'PDFDocument', 'PDFPage', 'PageKey',
    'SplitMode', 'MergeMode', 'CompressionLevel', 'ImageFormat', 'ColorMode', 'SortOrder',
    'PageRange', 'SplitOptions', 'MergeOptions', 'CompressOptions', 'ImageExtractionOptions',
    'OrganizeOptions', 'ProtectOptions', 'UnlockOptions', 'WatermarkOptions',
    'Artifact', 'AssemblyOutput', 'OperationResult', 'PDF_MEDIA_TYPE', 'ZIP_MEDIA_TYPE'
]
