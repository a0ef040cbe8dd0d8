"""Registration-age signal from the `whois` CLI.

The creation date is pulled from free-text whois output with a few alternative
patterns; the first pattern that matches wins. Older domains earn a small boost.
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Optional

from ..models import ScoreAdjustment
from .base import Provider, ProviderContext

logger = logging.getLogger(__name__)

CREATION_DATE_PATTERNS = (
    r"Creation Date:\s*(\d{4}-\d{2}-\d{2})",
    r"Created:\s*(\d{4}-\d{2}-\d{2})",
    r"created:\s*(\d{4}-\d{2}-\d{2})",
    r"Registration Date:\s*(\d{4}-\d{2}-\d{2})",
)

DAYS_PER_YEAR = 365.25


def parse_creation_date(output: str) -> Optional[datetime]:
    for pattern in CREATION_DATE_PATTERNS:
        match = re.search(pattern, output)
        if not match:
            continue
        try:
            return datetime.strptime(match.group(1), "%Y-%m-%d").replace(tzinfo=timezone.utc)
        except ValueError:
            # e.g. 2020-13-45: try the next pattern.
            continue
    return None


def domain_age_years(created: datetime, now: Optional[datetime] = None) -> float:
    now = now or datetime.now(timezone.utc)
    return (now - created).days / DAYS_PER_YEAR


async def run_whois(command: str, host: str) -> Optional[str]:
    """Run `<command> <host>` and return stdout, or None on any failure."""
    try:
        proc = await asyncio.create_subprocess_exec(
            command,
            host,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except FileNotFoundError:
        logger.debug(f"{command} CLI not available")
        return None
    except OSError as e:
        logger.debug(f"Failed to start {command}: {e}")
        return None

    try:
        stdout, _ = await proc.communicate()
    except asyncio.CancelledError:
        # Timed out by the engine: don't leave the child running.
        if proc.returncode is None:
            proc.kill()
            await proc.wait()
        raise

    if proc.returncode != 0:
        logger.debug(f"{command} {host} exited with {proc.returncode}")
        return None
    return stdout.decode("utf-8", errors="replace")


class WhoisProvider(Provider):
    name = "whois"
    signal = "domain_age_years"

    async def enrich(self, url: str, ctx: ProviderContext) -> Optional[ScoreAdjustment]:
        output = await run_whois(self.settings.option("command", "whois"), ctx.host)
        if output is None:
            return None

        created = parse_creation_date(output)
        if created is None:
            logger.debug(f"No creation date in whois output for {ctx.host}")
            return None

        age = domain_age_years(created, ctx.clock())
        ctx.observations[self.signal] = round(age, 2)
        if age <= self.scoring.domain_age_min_years:
            return None

        return ScoreAdjustment(
            source="Whois",
            adjustment=self.scoring.domain_age_boost,
            reason=f"Domain age: {age:.1f} years",
        )
