"""Result models returned by the mailbox operations.

Field names are snake_case in Python and camelCase on the wire
(``model_dump(by_alias=True)``), matching what agent callers expect.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _ResultModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class EmailEntry(_ResultModel):
    """Lightweight listing entry."""

    id: str = Field(description="Portable identifier (date.Message-ID)")
    subject: str
    from_: str = Field(alias="from", description="Bare sender address")
    date: str = Field(description="ISO 8601 date, empty when unknown")


class AttachmentInfo(_ResultModel):
    """Attachment metadata; the payload is fetched separately."""

    id: str
    filename: str
    content_type: str
    size: int


class AttachmentData(_ResultModel):
    id: str
    filename: str
    content_type: str
    size: int
    base64_content: str


class EmailContent(_ResultModel):
    id: str
    subject: str
    from_: str = Field(alias="from")
    to: str
    date: str
    body: str
    attachments: list[AttachmentInfo] = Field(default_factory=list)


class FolderEntry(_ResultModel):
    path: str
    name: str
    delimiter: str
    special_use: str | None = Field(default=None, exclude=True)
    selectable: bool = Field(default=True, exclude=True)


class MoveResult(_ResultModel):
    id: str
    destination: str


class StarResult(_ResultModel):
    id: str
    starred: bool


class ReadResult(_ResultModel):
    id: str
    read: bool


class BulkMoveResult(_ResultModel):
    moved_count: int
    source_path: str
    destination_path: str
    match_value: str


class DraftResult(_ResultModel):
    id: str
    uid: int | None = Field(default=None, description="UID in the drafts folder, if reported")
    subject: str
    to: str
    date: str


class StarredFolder(_ResultModel):
    folder: str
    count: int
    emails: list[EmailEntry]
