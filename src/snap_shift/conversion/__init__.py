"""
Domain layer for image and PDF conversion.
Provides interfaces (gateways) and a service that runs the conversions,
abstracting Pillow and PyMuPDF so front-ends (HTTP or others) can use the
same core logic.
"""

from .errors import BackendError, ClientInputError, ConversionError
from .interfaces import (
    ConversionResult,
    ImageCodecGateway,
    PdfComposerGateway,
    PdfRasterizerGateway,
    UploadedFile,
)
from .service import ConversionService
