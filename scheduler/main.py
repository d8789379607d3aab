from contextlib import asynccontextmanager
from typing import Optional
import logging
import os
import sys

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import config
from .api import router as api_router
from .errors import SchedulerError
from .store import TaskStore

logger = logging.getLogger(__name__)


def configure_logging(level: str | None = None) -> None:
    """Attach a stdout handler to the package logger if none is configured."""
    pkg_logger = logging.getLogger('scheduler')
    if not pkg_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s:%(name)s: %(message)s'))
        pkg_logger.addHandler(handler)
    pkg_logger.setLevel(getattr(logging, (level or config.LOG_LEVEL), logging.INFO))


async def _scheduler_error_handler(request: Request, exc: SchedulerError):
    if exc.status_code >= 500:
        logger.error('%s %s failed: %s', request.method, request.url.path, exc.message)
    return JSONResponse({'error': exc.message}, status_code=exc.status_code)


async def _request_validation_handler(request: Request, exc: RequestValidationError):
    errs = exc.errors()
    if errs:
        first = errs[0]
        loc = '.'.join(str(p) for p in first.get('loc', ()) if p != 'body')
        msg = f"{loc}: {first.get('msg')}" if loc else str(first.get('msg'))
    else:
        msg = 'invalid request'
    return JSONResponse({'error': msg}, status_code=400)


async def _http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse({'error': str(exc.detail)}, status_code=exc.status_code)


async def _unhandled_error_handler(request: Request, exc: Exception):
    logger.exception('unhandled error on %s %s', request.method, request.url.path)
    return JSONResponse({'error': 'internal server error'}, status_code=500)


def create_app(
    store: Optional[TaskStore] = None,
    database_url: Optional[str] = None,
    web_dir: Optional[str] = None,
) -> FastAPI:
    """Build the FastAPI application.

    When ``store`` is given it is used as-is (the caller owns its lifecycle);
    otherwise the lifespan creates a TaskStore for ``database_url`` on startup
    and disposes it on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = None
        if getattr(app.state, 'store', None) is None:
            owned = TaskStore(database_url or config.DATABASE_URL)
            app.state.store = owned
            logger.info('starting server using DATABASE_URL=%s', owned.database_url)
            await owned.init()
        try:
            yield
        finally:
            if owned is not None:
                await owned.close()
                app.state.store = None
                logger.info('task store closed')

    app = FastAPI(title='scheduler', lifespan=lifespan)
    app.state.store = store
    app.add_exception_handler(SchedulerError, _scheduler_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
    app.include_router(api_router)

    # serve the web client; mounted last so /api routes take precedence
    web_dir = web_dir or config.WEB_DIR
    if web_dir and os.path.isdir(web_dir):
        app.mount('/', StaticFiles(directory=web_dir, html=True), name='web')
    else:
        logger.info('web directory %r not found; serving API only', web_dir)
    return app


app = create_app()


def main() -> None:
    import uvicorn

    configure_logging()

    logger.info('server listening on %s:%s', config.HOST, config.PORT)
    uvicorn.run(app, host=config.HOST, port=config.PORT, log_level=config.LOG_LEVEL.lower())


if __name__ == '__main__':
    main()
