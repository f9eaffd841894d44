"""
app/services/sweep_service.py

Purpose: Stale registration reclamation

- Finds members stuck mid-registration longer than the staleness window
- Silently resets them to AWAITING_PHONE (no message to the user)
- Runs periodically in the background, under the same per-member lock
  as webhook events
"""

import asyncio
from datetime import datetime
from typing import Optional

from app.core.config import settings
from app.core.logging import get_logger, LogContext
from app.flow.context import FlowContext
from app.flow.handlers.restart import STALE_STEPS, stale_reset_transition
from app.flow.states import describe_step
from utils.time_utils import stale_cutoff, utcnow

logger = get_logger(__name__)


async def run_stale_sweep(ctx: FlowContext, now: Optional[datetime] = None, window_hours: Optional[int] = None) -> int:
    """
    One sweep pass.

    Candidates are re-read under their member lock; a member who answered
    in the meantime is left alone.

    Returns:
        Number of members reset
    """
    now = now or utcnow()
    window_hours = window_hours or settings.STALE_REGISTRATION_HOURS

    candidates = await ctx.store.find_stale(STALE_STEPS, stale_cutoff(now, window_hours))
    if not candidates:
        logger.debug("No stale registrations")
        return 0

    reset = 0
    for candidate in candidates:
        with LogContext(line_user_id=candidate.line_user_id, member_id=candidate.member_id):
            async with ctx.locks.hold(candidate.line_user_id):
                member = await ctx.store.get_by_external_id(candidate.line_user_id)
                if member is None:
                    continue

                transition = stale_reset_transition(member, now, window_hours)
                if transition is None:
                    logger.debug("Member became active, skipping reset")
                    continue

                logger.info(f"Resetting registration stuck at {describe_step(member.state.step)}")
                await ctx.executor.execute(member, None, transition)
                reset += 1

    logger.info(f"🧹 Reset {reset} stale registration(s)")
    return reset


async def stale_sweeper(ctx: FlowContext, interval_minutes: Optional[int] = None):
    """
    Background loop started with the application; cancelled on shutdown.
    """
    interval = (interval_minutes or settings.STALE_SWEEP_INTERVAL_MINUTES) * 60
    logger.info(f"Stale sweep every {interval // 60} minute(s)")

    while True:
        try:
            await run_stale_sweep(ctx)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Stale sweep failed: {e}", exc_info=True)
        await asyncio.sleep(interval)
