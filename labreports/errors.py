from __future__ import annotations


class LabReportError(Exception):
    """Base class for report assembly failures."""


class ResourceFetchError(LabReportError):
    """A logo could not be fetched or converted to an inline payload."""

    def __init__(self, url: str, reason: str):
        super().__init__(f'logo fetch failed for {url}: {reason}')
        self.url = url
        self.reason = reason


class CompositionError(LabReportError):
    """Header or row data that cannot be laid out at all."""


class RenderOrExportError(LabReportError):
    """The rendering collaborator failed to produce or emit a document."""


class UnknownReportKindError(LabReportError, KeyError):
    def __init__(self, kind: object):
        super().__init__(f'No report descriptor registered for {kind!r}')
        self.kind = kind

    def __str__(self) -> str:
        return str(self.args[0])
