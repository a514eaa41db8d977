"""Exceptions raised by the document publisher."""


class PublishError(Exception):
    """Base class for publisher errors."""


class InvalidComponentTag(PublishError):
    """A reserved custom-component tag whose component name cannot be derived."""

    def __init__(self, tag_name: str):
        super().__init__(f'Invalid component name: {tag_name}')
        self.tag_name = tag_name


class FrontMatterError(PublishError):
    """The YAML front matter block of a document could not be parsed."""


class UploadError(PublishError):
    """The asset store rejected an upload or answered with an unusable payload."""
