"""Bitbucket Pipelines access — the remote side of the polling engine.

Only the single call the engine needs (latest run of a repository, plus
its steps when paused or failed) is implemented here.
"""

from cdmenu.bitbucket.fetcher import BitbucketFetcher, PipelineFetcher

__all__ = ["BitbucketFetcher", "PipelineFetcher"]
