from .pdf_codec import PDFCodec
from .thumbnail_extractor import ThumbnailExtractor
from .page_selection import PageSelectionModel
from .document_assembler import DocumentAssembler
from .batch_packager import BatchPackager
from .batch_runner import BatchRunner
from .tool_session import ToolSession, SessionRegistry
from . import tools

__all__ = ['PDFCodec', 'ThumbnailExtractor', 'PageSelectionModel', 'DocumentAssembler',
           'BatchPackager', 'BatchRunner', 'ToolSession', 'SessionRegistry', 'tools']
