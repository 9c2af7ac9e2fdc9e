import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import FrozenSet, Optional

from sentry_tunnel import vars as tunnel_vars

from .envelope import Destination
from .errors import EnvelopeRejected

logger = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class TunnelPolicy:
    """
    Which destinations the tunnel is willing to relay to.

    An empty ``sentry_host`` allows every host and ``project_ids=None``
    allows every project, which turns the tunnel into an open relay for
    anything that looks like a DSN. An empty ``project_ids`` set is still an
    allow-list and rejects every project.
    """

    sentry_host: str = ""
    project_ids: Optional[FrozenSet[str]] = None
    upstream_timeout: float = 30.0

    @classmethod
    def from_env(cls) -> "TunnelPolicy":
        project_ids = tunnel_vars.SENTRY_PROJECT_IDS
        return cls(
            sentry_host=tunnel_vars.SENTRY_HOST,
            project_ids=None if project_ids is None else frozenset(project_ids),
            upstream_timeout=tunnel_vars.TUNNEL_UPSTREAM_TIMEOUT,
        )

    def check(self, destination: Destination) -> None:
        if self.sentry_host and destination.host != self.sentry_host:
            raise EnvelopeRejected(
                f"Invalid Sentry hostname: {destination.hostname}", reason="host"
            )
        if (
            self.project_ids is not None
            and destination.project_id not in self.project_ids
        ):
            raise EnvelopeRejected(
                f"Invalid Sentry project ID: {destination.project_id}",
                reason="project",
            )

    def log_summary(self) -> None:
        if self.sentry_host:
            logger.info(f"Required Sentry host: {self.sentry_host}")
        else:
            logger.warning(
                "Allow all Sentry hosts (not recommended, please use 'SENTRY_HOST'-env)"
            )

        if self.project_ids is None:
            logger.warning(
                "Allow all project ids (not recommended, please use 'SENTRY_PROJECT_IDS'-env)"
            )
        elif self.project_ids:
            logger.info(f"Allowed Sentry projects: {','.join(sorted(self.project_ids))}")
        else:
            logger.warning(
                "'SENTRY_PROJECT_IDS' is set but lists no project ids, every envelope will be rejected"
            )


@lru_cache()
def get_policy() -> TunnelPolicy:
    """Policy for the lifetime of the process; environment changes need a restart."""
    return TunnelPolicy.from_env()
