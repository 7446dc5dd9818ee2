from datetime import date

from pydantic import BaseModel, Field


class CommitmentUpsertRequest(BaseModel):
    class_id: int
    student_id: int
    book_id: int
    date: date
    status: str
    note: str | None = Field(default=None, max_length=2000)


class CommitmentAdvanceRequest(BaseModel):
    class_id: int
    student_id: int
    book_id: int
    date: date


class CommitmentSendRequest(BaseModel):
    class_id: int
    date: date


class RunAdvanceRequest(BaseModel):
    slot_id: int


class PortalRequestCreate(BaseModel):
    student_id: int
    request_type: str
    date_start: str | None = None
    date_end: str | None = None
    time: str | None = None
    change_type: str | None = None
    note: str | None = Field(default=None, max_length=1000)
