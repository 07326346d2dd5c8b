"""
Job Status Tracking for Background Tasks
"""

import asyncio
import logging

from arq import create_pool
from arq.jobs import Job, JobStatus
from fastapi import APIRouter, Depends

from ..auth import get_current_company_id
from ..domain.orders.schemas import JobQueuedResponse, JobStatusResponse
from ..exceptions import KyteBridgeError
from ..worker import get_redis_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/kyte/jobs", tags=["Jobs"])

STATUS_MAP = {
    JobStatus.deferred: "queued",
    JobStatus.queued: "queued",
    JobStatus.in_progress: "in_progress",
    JobStatus.complete: "complete",
    JobStatus.not_found: "not_found",
}


async def enqueue_conversion(company_id: str, orders: list[dict]) -> JobQueuedResponse:
    """Queue a batch conversion on the ARQ worker"""
    try:
        pool = await asyncio.wait_for(create_pool(get_redis_settings()), timeout=20.0)
    except Exception as e:
        logger.error(f"❌ Failed to connect to job queue: {e}")
        raise KyteBridgeError(
            "Job queue unavailable, try again or convert without background",
            status_code=503,
            code="QUEUE_UNAVAILABLE",
        ) from e

    try:
        job = await pool.enqueue_job("convert_orders_task", company_id, orders)
    finally:
        await pool.close()

    logger.info(f"📋 Kyte conversion job queued: {job.job_id} ({len(orders)} orders)")
    return JobQueuedResponse(jobId=job.job_id, message=f"Queued {len(orders)} orders for conversion")


async def get_job_status_with_retry(job_id: str, max_retries: int = 3, retry_delay: float = 1.0) -> JobStatusResponse:
    """
    Get job status with exponential backoff retry logic
    """
    for attempt in range(max_retries):
        try:
            pool = await asyncio.wait_for(create_pool(get_redis_settings()), timeout=20.0)
            try:
                job = Job(job_id, pool)
                job_status = await asyncio.wait_for(job.status(), timeout=15.0)
                if job_status == JobStatus.not_found:
                    raise KyteBridgeError("Job not found", status_code=404, code="NOT_FOUND")

                status = STATUS_MAP.get(job_status, "unknown")
                result = None
                error = None
                if job_status == JobStatus.complete:
                    try:
                        job_result = await asyncio.wait_for(job.result(timeout=0), timeout=10.0)
                        result = job_result if isinstance(job_result, dict) else {"data": job_result}
                    except asyncio.TimeoutError:
                        logger.warning(f"⏰ Timeout getting result for job {job_id}")
                        error = "Timeout retrieving job result"
                        status = "failed"
                    except Exception as e:
                        error = str(e)
                        status = "failed"
                        logger.error(f"❌ Job {job_id} failed: {error}")

                return JobStatusResponse(jobId=job_id, status=status, result=result, error=error)
            finally:
                await pool.close()

        except KyteBridgeError:
            raise
        except asyncio.TimeoutError:
            logger.warning(f"⏰ Timeout on attempt {attempt + 1}/{max_retries} for job {job_id}")
            if attempt == max_retries - 1:
                raise KyteBridgeError("Timeout connecting to job queue - please try again", 504, "TIMEOUT") from None
        except Exception as e:
            logger.warning(f"🔄 Retry {attempt + 1}/{max_retries} for job {job_id}: {str(e)}")
            if attempt == max_retries - 1:
                logger.error(f"❌ All retries failed for job {job_id}: {str(e)}")
                raise KyteBridgeError("Failed to retrieve job status after retries") from e

        await asyncio.sleep(retry_delay * (2**attempt))


@router.get("/{job_id}", response_model=JobStatusResponse)
async def get_job_status(job_id: str, company_id: str = Depends(get_current_company_id)):
    """Status of a background conversion batch"""
    return await get_job_status_with_retry(job_id)
