"""Fetch handler for equipment photos."""

from kizeo_jobs.models import JobKind
from kizeo_jobs.registry import fetcher_registry


@fetcher_registry.handler(JobKind.PHOTO)
async def fetch_photo(ctx, job, media_ref):
    """
    Download one media part of the job's form record.

    Args:
        ctx: Context dict with api client and logger
        job: Job being processed
        media_ref: Media name of the part to fetch
    """
    if not media_ref:
        raise ValueError(f"Photo job {job.id} has no media reference")

    ctx["logger"].debug(f"Fetching media {media_ref} for job {job.id}")
    return await ctx["api"].fetch_binary(
        job.external_form_id, job.external_record_id, media_ref
    )
