"""
Fire-and-forget summarization trigger.

Called after every message append. The caller gets control back at once and
never sees an exception. The needs-check -> summarize -> commit sequence runs
as a background task; a supervisor waits for it with a timeout. When the
timeout fires the supervisor logs and stops waiting, but the work itself is
shielded and keeps running; it may still commit later.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Callable, Optional, Set

import structlog
from sqlalchemy.orm import Session

from ..ai.types import StructuredGenerator
from .schemas import SummarizationConfig
from .service import SummarizationService

logger = structlog.get_logger()

DEFAULT_TIMEOUT_MS = 30000

# Strong references so the event loop does not garbage-collect running tasks
_background_tasks: Set[asyncio.Task] = set()


def _keep_alive(task: asyncio.Task) -> asyncio.Task:
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


async def _summarize_in_background(
    branch_id: str,
    session_factory: Callable[[], Session],
    generator: Optional[StructuredGenerator],
    config: Optional[SummarizationConfig],
) -> None:
    log = logger.bind(branch_id=branch_id)
    db = None
    try:
        db = session_factory()
        service = SummarizationService(db, generator=generator, config=config)
        if not service.branch_needs_summary(branch_id):
            return

        summary = await service.summarize_branch(branch_id)
        if summary is not None:
            log.info("background_summarization_committed")
    except Exception:
        # Background work must never surface to the caller
        log.exception("background_summarization_failed")
    finally:
        if db is not None:
            db.close()


async def _supervise(branch_id: str, work: asyncio.Task, timeout_ms: int) -> None:
    try:
        await asyncio.wait_for(asyncio.shield(work), timeout=timeout_ms / 1000)
    except asyncio.TimeoutError:
        logger.warning(
            "summarization_timeout", branch_id=branch_id, timeout_ms=timeout_ms
        )
    except Exception:
        logger.exception("background_summarization_failed", branch_id=branch_id)


async def _run_detached(
    branch_id: str,
    session_factory: Callable[[], Session],
    generator: Optional[StructuredGenerator],
    config: Optional[SummarizationConfig],
    timeout_ms: int,
) -> None:
    work = _keep_alive(
        asyncio.create_task(
            _summarize_in_background(branch_id, session_factory, generator, config)
        )
    )
    await _supervise(branch_id, work, timeout_ms)
    # The loop of a detached thread ends with this coroutine; let the
    # shielded work finish instead of being cancelled by asyncio.run()
    if not work.done():
        await work


def trigger_summarization_if_needed(
    branch_id: str,
    *,
    session_factory: Callable[[], Session],
    generator: Optional[StructuredGenerator],
    config: Optional[SummarizationConfig] = None,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
) -> Optional[asyncio.Task]:
    """Start background summarization of ``branch_id`` if it is due.

    Returns immediately. Inside a running event loop the supervising task is
    returned (awaiting it is optional and never raises); without a loop the
    work runs on a daemon thread and None is returned.
    """
    try:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None:
            thread = threading.Thread(
                target=asyncio.run,
                args=(
                    _run_detached(
                        branch_id, session_factory, generator, config, timeout_ms
                    ),
                ),
                name=f"summarize-{branch_id}",
                daemon=True,
            )
            thread.start()
            return None

        work = _keep_alive(
            loop.create_task(
                _summarize_in_background(branch_id, session_factory, generator, config)
            )
        )
        return _keep_alive(loop.create_task(_supervise(branch_id, work, timeout_ms)))
    except Exception:
        logger.exception("summarization_trigger_failed", branch_id=branch_id)
        return None
