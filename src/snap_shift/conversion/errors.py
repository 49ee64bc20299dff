from typing import Iterable


class ConversionError(Exception):
    """Base error for all conversion failures.

    ``message`` is safe to return to the caller as-is; ``status_code`` is the
    HTTP status the web layer maps the error to.
    """

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ClientInputError(ConversionError):
    status_code = 400


class UnsupportedFormatError(ClientInputError):
    def __init__(self, value: str, supported: Iterable[str]) -> None:
        self.value = value
        self.supported = tuple(supported)
        super().__init__(
            f"Error: Unsupported output format '{value}'. "
            f"Supported formats are: {', '.join(self.supported)}"
        )


class EmptyUploadError(ClientInputError):
    def __init__(self, message: str = "Error: Please upload a file.") -> None:
        super().__init__(message)


class InvalidImageError(ClientInputError):
    def __init__(self, filename: str | None = None) -> None:
        self.filename = filename
        if filename:
            message = f"Error: The uploaded file '{filename}' is not a valid or supported image."
        else:
            message = "Error: The uploaded file is not a valid or supported image."
        super().__init__(message)


class NoValidImagesError(ClientInputError):
    def __init__(self) -> None:
        super().__init__("Error: No valid images were supplied.")


class InvalidPdfError(ClientInputError):
    def __init__(self) -> None:
        super().__init__("Error: Please upload a valid PDF file.")


class PayloadTooLargeError(ConversionError):
    status_code = 413

    def __init__(self, max_upload_mb: int) -> None:
        self.max_upload_mb = max_upload_mb
        super().__init__(f"Error: Upload exceeds {max_upload_mb} MB.")


class BackendError(ConversionError):
    """A codec or document backend failed on input it accepted."""

    status_code = 500


class EncodingError(BackendError):
    def __init__(self, target_format: str) -> None:
        self.target_format = target_format
        super().__init__(f"Error: Could not write to format '{target_format}'.")


class ComposeError(BackendError):
    def __init__(self) -> None:
        super().__init__("Error during PDF conversion.")


class RasterizeError(BackendError):
    def __init__(self) -> None:
        super().__init__("Error during PDF to Image conversion.")
