"""Pipeline run fetchers — the engine's only view of the remote CI API.

``PipelineFetcher`` is the Protocol the engine depends on.
``BitbucketFetcher`` implements it against the Bitbucket Cloud REST API
with ``httpx``.  Fetchers raise ``FetchError`` subclasses; they never
build statuses themselves (that is the evaluator's job).
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

import httpx
from pydantic import ValidationError

from cdmenu.errors import (
    AuthenticationError,
    MalformedResponseError,
    NotFoundError,
    RateLimitError,
    TransportError,
)
from cdmenu.models.runs import PipelineStep, RawRun
from cdmenu.models.targets import Credentials, MonitoredTarget

logger = logging.getLogger(__name__)

BITBUCKET_API_BASE = "https://api.bitbucket.org/2.0"
_TIMEOUT = 30.0
_RECENT_RUNS = 20  # branch filtering looks at this many recent runs


@runtime_checkable
class PipelineFetcher(Protocol):
    """Protocol for fetching the latest run of a monitored target.

    Any object with a matching ``fetch_latest_run`` method satisfies it;
    tests use plain in-memory fakes.
    """

    def fetch_latest_run(
        self, target: MonitoredTarget, credentials: Credentials
    ) -> RawRun | None:
        """Return the target's latest run, or ``None`` if it has none.

        Raises
        ------
        AuthenticationError, RateLimitError, NotFoundError,
        TransportError, MalformedResponseError
        """
        ...


class BitbucketFetcher:
    """Fetches pipeline runs from Bitbucket Cloud.

    One ``httpx.Client`` is shared by all worker threads; credentials are
    passed per request so a credential change takes effect on the next
    tick without rebuilding the client.

    Parameters
    ----------
    base_url:
        API root.  Defaults to ``https://api.bitbucket.org/2.0``.
    timeout:
        Per-request timeout in seconds.
    client:
        Pre-built ``httpx.Client`` (tests pass one with a ``MockTransport``).
    """

    def __init__(
        self,
        base_url: str = BITBUCKET_API_BASE,
        timeout: float = _TIMEOUT,
        client: httpx.Client | None = None,
    ) -> None:
        self._base = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> BitbucketFetcher:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # PipelineFetcher
    # ------------------------------------------------------------------

    def fetch_latest_run(
        self, target: MonitoredTarget, credentials: Credentials
    ) -> RawRun | None:
        runs = self.get_recent_runs(target, credentials, limit=_RECENT_RUNS)
        if target.branch:
            run = next((r for r in runs if r.branch == target.branch), None)
        else:
            run = runs[0] if runs else None
        if run is None:
            logger.debug("No pipelines found for %s", target.key)
            return None

        if run.is_paused:
            run = run.model_copy(
                update={"pending_step_name": self._pending_step_name(target, credentials, run)}
            )
        elif run.is_failed:
            run = run.model_copy(
                update={"failed_step_name": self._failed_step_reason(target, credentials, run)}
            )
        return run

    # ------------------------------------------------------------------
    # API calls
    # ------------------------------------------------------------------

    def get_recent_runs(
        self, target: MonitoredTarget, credentials: Credentials, limit: int = _RECENT_RUNS
    ) -> list[RawRun]:
        """Most recent runs of the target's repository, newest first."""
        url = f"{self._base}/repositories/{target.workspace}/{target.repo_slug}/pipelines/"
        data = self._get(url, credentials, params={"sort": "-created_on", "pagelen": limit})
        return [self._parse(RawRun, value) for value in _values(data)]

    def get_steps(
        self, target: MonitoredTarget, credentials: Credentials, pipeline_uuid: str
    ) -> list[PipelineStep]:
        url = (
            f"{self._base}/repositories/{target.workspace}/{target.repo_slug}"
            f"/pipelines/{pipeline_uuid}/steps/"
        )
        data = self._get(url, credentials)
        return [self._parse(PipelineStep, value) for value in _values(data)]

    def _pending_step_name(
        self, target: MonitoredTarget, credentials: Credentials, run: RawRun
    ) -> str | None:
        # Step lookup is best effort; the run is still reported as paused.
        try:
            steps = self.get_steps(target, credentials, run.uuid)
        except (TransportError, NotFoundError, MalformedResponseError) as exc:
            logger.debug("Could not load steps for %s: %s", target.key, exc)
            return None
        return next((s.name for s in steps if s.is_pending and s.name), None)

    def _failed_step_reason(
        self, target: MonitoredTarget, credentials: Credentials, run: RawRun
    ) -> str | None:
        try:
            steps = self.get_steps(target, credentials, run.uuid)
        except (TransportError, NotFoundError, MalformedResponseError) as exc:
            logger.debug("Could not load steps for %s: %s", target.key, exc)
            return None
        failed = next((s for s in steps if s.is_failed and s.name), None)
        return f"Step '{failed.name}' failed" if failed else None

    def _get(
        self, url: str, credentials: Credentials, params: dict[str, Any] | None = None
    ) -> Any:
        try:
            resp = self._client.get(
                url,
                params=params,
                auth=(credentials.username, credentials.app_password),
                headers={"Accept": "application/json"},
            )
        except httpx.TimeoutException as exc:
            raise TransportError(f"Request timed out: {url}") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"HTTP error: {exc}") from exc

        status = resp.status_code
        if status == 200:
            try:
                return resp.json()
            except ValueError as exc:
                raise MalformedResponseError(f"Invalid JSON from {url}") from exc
        if status in (401, 403):
            raise AuthenticationError()
        if status == 429:
            raise RateLimitError(retry_after=_retry_after(resp))
        if status == 404:
            raise NotFoundError(f"Resource not found: {url}")
        raise TransportError(f"API error: Status {status}: {resp.text[:200]}")

    @staticmethod
    def _parse(model: Any, value: Any) -> Any:
        try:
            return model.model_validate(value)
        except ValidationError as exc:
            raise MalformedResponseError(f"Unexpected {model.__name__} payload: {exc}") from exc


def _values(data: Any) -> list[Any]:
    """Extract ``values`` from a paginated Bitbucket response."""
    if not isinstance(data, dict) or not isinstance(data.get("values", []), list):
        raise MalformedResponseError("Expected a paginated object with a 'values' list")
    return data.get("values", [])


def _retry_after(resp: httpx.Response) -> float | None:
    raw = resp.headers.get("Retry-After")
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None
