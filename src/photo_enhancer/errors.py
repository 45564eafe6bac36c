from __future__ import annotations


class EnhancerError(RuntimeError):
    code = "Error"
    http_status = 400

    def __init__(self, message: str, *, status_code: int | None = None, excerpt: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.excerpt = excerpt

    def as_dict(self) -> dict[str, object]:
        return {"code": self.code, "message": str(self)}


class UnsupportedInputError(EnhancerError):
    code = "UnsupportedInput"


class LocalPathUnreachableError(EnhancerError):
    code = "LocalPathUnreachable"


class InvalidEncodingError(EnhancerError):
    code = "InvalidEncoding"


class TruncatedPayloadError(EnhancerError):
    code = "TruncatedPayload"


class PayloadTooLargeError(EnhancerError):
    code = "PayloadTooLarge"
    http_status = 413


class RemoteFetchError(EnhancerError):
    code = "RemoteFetchFailed"
    http_status = 502


class NotAnImageError(EnhancerError):
    code = "NotAnImage"
    http_status = 415


class BackendHTTPError(EnhancerError):
    code = "BackendHttpError"
    http_status = 502


class BackendProtocolError(EnhancerError):
    code = "BackendProtocolError"
    http_status = 502


class BackendReportedError(EnhancerError):
    code = "BackendReportedError"
    http_status = 502


class StorageWriteError(EnhancerError):
    code = "StorageWriteFailed"
    http_status = 500


class ArtifactNotFoundError(EnhancerError):
    code = "NotFound"
    http_status = 404


class MultipartError(EnhancerError):
    code = "MalformedUpload"


def excerpt(text: str, limit: int = 200) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else text[:limit] + "…"
