from typing import List, Optional, Union
from pydantic import BaseModel
from sqlmodel import SQLModel, Field
from sqlalchemy import UniqueConstraint


class Task(SQLModel, table=True):
    """A scheduled task.

    ``date`` is the currently scheduled occurrence as ``YYYYMMDD``. ``repeat``
    is the recurrence rule; an empty string marks a one-shot task that is
    deleted when completed.
    """
    __tablename__ = 'scheduler'
    __table_args__ = (UniqueConstraint('date', 'title', name='uq_scheduler_date_title'),)

    id: Optional[int] = Field(default=None, primary_key=True)
    date: str = Field(max_length=8, index=True)
    title: str
    comment: str = Field(default='')
    repeat: str = Field(default='', max_length=128)


# Request bodies. Every field is optional at the schema level so that missing
# values reach the handlers and are reported as {"error": ...} with a
# specific message instead of a generic validation failure.

class TaskCreate(BaseModel):
    date: Optional[str] = None
    title: Optional[str] = None
    comment: Optional[str] = None
    repeat: Optional[str] = None


class TaskUpdate(BaseModel):
    # web client sends the id back as a string; accept plain ints too
    id: Optional[Union[int, str]] = None
    date: Optional[str] = None
    title: Optional[str] = None
    comment: Optional[str] = None
    repeat: Optional[str] = None


class TaskOut(BaseModel):
    id: str
    date: str
    title: str
    comment: str
    repeat: str

    @classmethod
    def from_task(cls, task: Task) -> 'TaskOut':
        return cls(
            id=str(task.id),
            date=task.date or '',
            title=task.title,
            comment=task.comment or '',
            repeat=task.repeat or '',
        )


class TaskList(BaseModel):
    tasks: List[TaskOut]


class TaskCreated(BaseModel):
    id: str
