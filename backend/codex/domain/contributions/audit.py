"""Audit trail for contribution mutations."""

from __future__ import annotations

import logging
from typing import Mapping

from redis.exceptions import RedisError

from codex.infra.redis import redis_client
from codex.obs import metrics as obs_metrics
from codex.settings import settings

logger = logging.getLogger(__name__)


async def log_contribution_event(event: str, fields: Mapping[str, object]) -> None:
	"""Append to the audit stream. Runs after commit, so a failure is logged, not raised."""
	payload = {"event": event, **{key: "" if value is None else str(value) for key, value in fields.items()}}
	try:
		await redis_client.xadd(
			settings.audit_stream,
			payload,
			maxlen=settings.audit_stream_maxlen,
			approximate=True,
		)
	except RedisError:
		obs_metrics.inc_audit_failure()
		logger.warning("contribution_audit_write_failed", extra={"event": event}, exc_info=True)
