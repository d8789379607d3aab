from contextlib import contextmanager
from datetime import date
from typing import Optional
import logging

from sqlmodel import select
from sqlalchemy import update as sqlalchemy_update
from sqlalchemy import delete as sqlalchemy_delete
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from . import config
from .db import create_engine, create_sessionmaker, init_db
from .errors import DuplicateError, NotFoundError, StorageError, ValidationError
from .models import Task
from .nextdate import (
    CONTEXT_ADD,
    CONTEXT_CHECK,
    CONTEXT_DONE,
    CONTEXT_LIST,
    format_date,
    next_date_lenient,
    next_date_strict,
    parse_date,
    today,
    validate_rule,
)

logger = logging.getLogger(__name__)


@contextmanager
def _storage_errors(action: str):
    """Translate SQLAlchemy failures into the scheduler error taxonomy."""
    try:
        yield
    except IntegrityError as e:
        logger.info('%s rejected by constraint: %s', action, e.orig)
        raise DuplicateError('a task with this date and title already exists') from e
    except SQLAlchemyError as e:
        logger.exception('%s failed', action)
        raise StorageError(f'{action} failed') from e


def resolve_new_date(date_str: str | None, repeat: str | None, now: date | None = None) -> str:
    """Return the date a newly created task is stored with.

    Blank means today. A date in the past is moved to today for one-shot tasks
    and to the next occurrence for recurring ones. The rule is always
    validated, even when the date is already in the future.
    """
    now = now or today()
    repeat = repeat or ''
    validate_rule(repeat)
    if not date_str or not date_str.strip():
        return format_date(now)
    start = parse_date(date_str.strip())
    if start >= now:
        return format_date(start)
    if not repeat:
        return format_date(now)
    return next_date_strict(now, format_date(start), repeat, CONTEXT_ADD)


def _validate_fields(task: Task) -> None:
    if not task.title or not task.title.strip():
        raise ValidationError('title is required')
    parse_date(task.date)


def _view(task: Task, effective_date: str) -> Task:
    # detached copy so the rolled-forward date can never be flushed back
    return Task(
        id=task.id,
        date=effective_date,
        title=task.title,
        comment=task.comment,
        repeat=task.repeat,
    )


class TaskStore:
    """Persistent task storage plus the due-date rollover view used for listing.

    The store owns its engine. Create one per process, call ``init()`` before
    use and ``close()`` on shutdown. Every public method runs in its own
    session, so a single store can be shared by concurrent requests.
    """

    def __init__(self, database_url: str | None = None, echo: bool | None = None):
        self.database_url = database_url or config.DATABASE_URL
        self.engine = create_engine(self.database_url, echo=echo)
        self._session = create_sessionmaker(self.engine)

    async def init(self) -> None:
        with _storage_errors('schema setup'):
            await init_db(self.engine)
        logger.info('TaskStore ready db=%s total=%s', self.database_url, await self.count())

    async def close(self) -> None:
        await self.engine.dispose()

    async def count(self) -> int:
        with _storage_errors('count tasks'):
            async with self._session() as sess:
                res = await sess.exec(select(func.count()).select_from(Task))
                return int(res.one())

    async def add(self, task: Task) -> int:
        _validate_fields(task)
        row = Task(
            date=task.date,
            title=task.title.strip(),
            comment=task.comment or '',
            repeat=task.repeat or '',
        )
        with _storage_errors('add task'):
            async with self._session() as sess:
                sess.add(row)
                await sess.commit()
                await sess.refresh(row)
        logger.debug('task added id=%s date=%s repeat=%r', row.id, row.date, row.repeat)
        return int(row.id)

    async def get(self, task_id: int) -> Task:
        with _storage_errors('get task'):
            async with self._session() as sess:
                task = await sess.get(Task, task_id)
        if task is None:
            raise NotFoundError(task_id)
        return task

    async def update(self, task: Task, now: date | None = None) -> None:
        if task.id is None:
            raise ValidationError('task id is required')
        _validate_fields(task)
        # validates the rule against the new date; the computed date is not used
        next_date_strict(now or today(), task.date, task.repeat, CONTEXT_CHECK)
        stmt = (
            sqlalchemy_update(Task)
            .where(Task.id == task.id)
            .values(
                date=task.date,
                title=task.title.strip(),
                comment=task.comment or '',
                repeat=task.repeat or '',
            )
        )
        with _storage_errors('update task'):
            async with self._session() as sess:
                res = await sess.execute(stmt)
                await sess.commit()
        if not res.rowcount:
            raise NotFoundError(task.id)
        logger.debug('task updated id=%s date=%s', task.id, task.date)

    async def delete(self, task_id: int) -> None:
        with _storage_errors('delete task'):
            async with self._session() as sess:
                res = await sess.execute(sqlalchemy_delete(Task).where(Task.id == task_id))
                await sess.commit()
        if not res.rowcount:
            raise NotFoundError(task_id)
        logger.debug('task deleted id=%s', task_id)

    async def list_upcoming(self, now: date | None = None, limit: int | None = None) -> list[Task]:
        """Return tasks ordered by effective date, at most ``limit`` of them.

        Tasks dated on or before ``now`` are shown at their next occurrence
        (computed leniently, so a corrupt rule yields an empty date instead of
        an error). The stored rows are never modified here.
        """
        now = now or today()
        limit = config.TASK_LIST_LIMIT if limit is None else limit
        cutoff = format_date(now)
        with _storage_errors('list tasks'):
            async with self._session() as sess:
                due = (await sess.exec(select(Task).where(Task.date <= cutoff))).all()
                # future rows keep their date, so only the first `limit` can matter
                upcoming = (await sess.exec(
                    select(Task).where(Task.date > cutoff).order_by(Task.date, Task.id).limit(limit)
                )).all()

        out: list[Task] = []
        for task in due:
            try:
                parse_date(task.date)
            except ValidationError:
                logger.warning('task id=%s has malformed date %r; listing as stored', task.id, task.date)
                out.append(task)
                continue
            effective = next_date_lenient(now, task.date, task.repeat, CONTEXT_LIST)
            out.append(_view(task, effective or ''))
        out.extend(upcoming)
        out.sort(key=lambda t: (t.date or '', t.id or 0))
        return out[:limit]

    async def complete(self, task_id: int, now: date | None = None) -> Optional[Task]:
        """Mark a task done.

        One-shot tasks are deleted (returns None). Recurring tasks move to
        their next occurrence after ``now`` and the updated task is returned.
        """
        now = now or today()
        with _storage_errors('complete task'):
            async with self._session() as sess:
                task = await sess.get(Task, task_id)
                if task is None:
                    raise NotFoundError(task_id)
                if not task.repeat:
                    await sess.delete(task)
                    await sess.commit()
                    logger.debug('one-shot task id=%s completed and deleted', task_id)
                    return None
                nxt = next_date_strict(now, task.date, task.repeat, CONTEXT_DONE)
                if not nxt:
                    raise ValidationError(f'cannot compute next date for task {task_id}')
                task.date = nxt
                sess.add(task)
                await sess.commit()
                await sess.refresh(task)
        logger.debug('recurring task id=%s completed, next date %s', task_id, nxt)
        return task
