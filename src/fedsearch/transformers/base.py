"""Base transformer interface."""

from __future__ import annotations

import io
from abc import ABC, abstractmethod
from typing import BinaryIO, Union

from fedsearch.models.record import Record

Content = Union[bytes, str, BinaryIO]
"""Raw document content: bytes, text, or a seekable binary file."""


def open_content(data: Content) -> BinaryIO:
    """Return a binary stream positioned at the start of *data*.

    Files are rewound rather than copied, so a spilled buffer can be read
    more than once without loading it into memory.
    """
    if isinstance(data, str):
        return io.BytesIO(data.encode("utf-8"))
    if isinstance(data, bytes | bytearray):
        return io.BytesIO(bytes(data))
    data.seek(0)
    return data


class InputTransformer(ABC):
    """Converts a raw metadata document into a ``Record``.

    Implementations must raise ``TransformError`` for content they cannot
    read instead of returning a partial record.
    """

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def transform(self, data: Content, identifier: str | None = None) -> Record:
        """Transform *data* into a record.

        Args:
            data: The raw document.
            identifier: Identifier to assign to the record, overriding any
                identifier found in the document.

        Returns:
            The transformed record.

        Raises:
            TransformError: If the document is malformed or unsupported.
        """
