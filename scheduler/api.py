from typing import Optional
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from .errors import SchedulerError, ValidationError
from .models import Task, TaskCreate, TaskCreated, TaskList, TaskOut, TaskUpdate
from .nextdate import CONTEXT_NEXTDATE, next_date, parse_date, today
from .store import TaskStore, resolve_new_date

router = APIRouter(prefix='/api')
logger = logging.getLogger(__name__)


def get_store(request: Request) -> TaskStore:
    return request.app.state.store


# SQLite INTEGER is a signed 64-bit value
_MIN_ID = -2 ** 63
_MAX_ID = 2 ** 63 - 1


def _parse_id(raw) -> int:
    """Parse a task id from a query string or JSON body value."""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ValidationError('task id is required')
    if isinstance(raw, bool):
        raise ValidationError(f'invalid task id {raw!r}')
    if isinstance(raw, int):
        task_id = raw
    else:
        try:
            task_id = int(str(raw).strip())
        except ValueError:
            raise ValidationError(f'invalid task id {raw!r}')
    if task_id < _MIN_ID or task_id > _MAX_ID:
        raise ValidationError(f'invalid task id {raw!r}')
    return task_id


@router.get('/nextdate', response_class=PlainTextResponse)
async def api_next_date(now: Optional[str] = None, date: Optional[str] = None, repeat: Optional[str] = None):
    """Stateless next-occurrence query used by the web client's task editor.

    Responds with the bare ``YYYYMMDD`` string (empty when there is no next
    date) and plain-text errors with status 400.
    """
    try:
        ref = parse_date(now)
        result = next_date(ref, date or '', repeat or '', CONTEXT_NEXTDATE)
    except SchedulerError as e:
        return PlainTextResponse(e.message, status_code=400)
    return PlainTextResponse(result or '')


@router.post('/task', status_code=201, response_model=TaskCreated)
async def api_add_task(body: TaskCreate, store: TaskStore = Depends(get_store)):
    title = (body.title or '').strip()
    if not title:
        raise ValidationError('title is required')
    repeat = body.repeat or ''
    task = Task(
        date=resolve_new_date(body.date, repeat),
        title=title,
        comment=body.comment or '',
        repeat=repeat,
    )
    task_id = await store.add(task)
    logger.info('created task id=%s date=%s repeat=%r', task_id, task.date, repeat)
    return TaskCreated(id=str(task_id))


@router.get('/tasks', response_model=TaskList)
async def api_list_tasks(store: TaskStore = Depends(get_store)):
    tasks = await store.list_upcoming(today())
    return TaskList(tasks=[TaskOut.from_task(t) for t in tasks])


@router.get('/task', response_model=TaskOut)
async def api_get_task(id: Optional[str] = None, store: TaskStore = Depends(get_store)):
    task = await store.get(_parse_id(id))
    return TaskOut.from_task(task)


@router.put('/task')
async def api_update_task(body: TaskUpdate, store: TaskStore = Depends(get_store)):
    task_id = _parse_id(body.id)
    if not body.date:
        raise ValidationError('date is required')
    parse_date(body.date)
    title = (body.title or '').strip()
    if not title:
        raise ValidationError('title is required')
    task = Task(
        id=task_id,
        date=body.date,
        title=title,
        comment=body.comment or '',
        repeat=body.repeat or '',
    )
    await store.update(task, today())
    return JSONResponse({})


@router.post('/task/done')
async def api_complete_task(id: Optional[str] = None, store: TaskStore = Depends(get_store)):
    task_id = _parse_id(id)
    task = await store.complete(task_id, today())
    if task is None:
        logger.info('completed one-shot task id=%s (deleted)', task_id)
    else:
        logger.info('completed task id=%s, rescheduled to %s', task_id, task.date)
    return JSONResponse({})


@router.delete('/task')
async def api_delete_task(id: Optional[str] = None, store: TaskStore = Depends(get_store)):
    await store.delete(_parse_id(id))
    return JSONResponse({})
