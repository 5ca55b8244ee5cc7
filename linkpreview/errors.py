"""Domain-specific exceptions for the preview pipeline."""

from typing import Sequence


class PreviewError(Exception):
    """Base class for every failure that ends a preview attempt."""

    code = "preview-error"


class DisallowedTarget(PreviewError):
    """The URL (or a redirect hop) failed the host safety check."""

    code = "disallowed-target"

    def __init__(self, reason: str, url: str, host: str = "", addresses: Sequence[str] = ()):
        self.reason = reason
        self.url = url
        self.host = host
        self.addresses = tuple(addresses)
        super().__init__(f"{reason}: {url}")


class FetchError(PreviewError):
    """Transport-level failure while retrieving the document."""

    code = "fetch-error"

    def __init__(self, url: str, detail: str = ""):
        self.url = url
        self.detail = detail
        super().__init__(f"{self.code}: {url}" + (f" ({detail})" if detail else ""))


class FetchTimeout(FetchError):
    code = "timeout"


class TooManyRedirects(FetchError):
    code = "redirect-limit-exceeded"


class BodyTooLarge(FetchError):
    code = "body-too-large"


class ConnectFailed(FetchError):
    code = "connection-failed"


class BadStatus(FetchError):
    code = "bad-status"

    def __init__(self, url: str, status_code: int):
        self.status_code = status_code
        super().__init__(url, f"HTTP {status_code}")
