"""Monitored target and credential models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

BITBUCKET_WEB_BASE = "https://bitbucket.org"


class MonitoredTarget(BaseModel):
    """One pipeline to watch.

    Unique by ``(workspace, repo_slug, branch)``.  The set of targets is
    owned by the configuration provider; the engine only ever reads an
    immutable snapshot of it.
    """

    model_config = ConfigDict(frozen=True)

    workspace: str
    project_key: str | None = None
    project_name: str | None = None
    repo_slug: str
    repo_name: str = ""
    branch: str | None = None  # monitor a specific branch only

    @property
    def key(self) -> str:
        """Stable identity string, e.g. ``acme/api@main``."""
        base = f"{self.workspace}/{self.repo_slug}"
        return f"{base}@{self.branch}" if self.branch else base

    @property
    def display_name(self) -> str:
        return self.repo_name or self.repo_slug

    @property
    def group_name(self) -> str:
        """Project name used to group targets, falling back to the workspace."""
        return self.project_name or self.workspace

    @property
    def web_url(self) -> str:
        return f"{BITBUCKET_WEB_BASE}/{self.workspace}/{self.repo_slug}/pipelines"

    def run_url(self, build_number: int) -> str:
        """Browser URL of a specific pipeline run."""
        return f"{self.web_url}/results/{build_number}"


class Credentials(BaseModel):
    """Bitbucket username and app password."""

    model_config = ConfigDict(frozen=True)

    username: str
    app_password: str

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, app_password='***')"

    __str__ = __repr__
