"""Registration email check — syntax plus a DNS deliverability lookup."""

from __future__ import annotations

import logging
from typing import Any

from email_validator import EmailNotValidError, validate_email
from fastapi.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)


async def email_domain_exists(email: str, dns_resolver: Any = None) -> bool:
    """Return ``True`` if *email* is well-formed and its domain accepts mail.

    The MX (or fallback A/AAAA) lookup is blocking, so it runs in the
    threadpool.  *dns_resolver* is passed through to ``email_validator``.
    """
    try:
        await run_in_threadpool(
            validate_email,
            email,
            check_deliverability=True,
            dns_resolver=dns_resolver,
        )
    except EmailNotValidError as exc:
        logger.info("Rejected email %s: %s", email, exc)
        return False
    return True
