"""Fetch handler for technician PDFs."""

from kizeo_jobs.models import JobKind
from kizeo_jobs.registry import fetcher_registry


@fetcher_registry.handler(JobKind.PDF)
async def fetch_pdf(ctx, job, media_ref):
    """
    Download the rendered PDF of the job's form record.

    Args:
        ctx: Context dict with api client and logger
        job: Job being processed
        media_ref: Unused, PDF jobs have a single implicit part
    """
    logger = ctx["logger"]
    logger.debug(
        f"Fetching PDF for job {job.id} "
        f"(form={job.external_form_id}, record={job.external_record_id})"
    )
    return await ctx["api"].fetch_pdf(job.external_form_id, job.external_record_id)
