import os
import logging
from typing import Any, Callable, Dict, Optional
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel
import uvicorn
from threading import Thread

from .errors import JobNotFound
from .job_store import JobStore
from .models import JobFormat, JobStatus
from .orchestrator import PipelineOrchestrator

logger = logging.getLogger("shorts_worker")


class EnqueueRequest(BaseModel):
    sourceKey: str
    title: Optional[str] = None
    maxDurationSeconds: Optional[int] = None
    format: str = JobFormat.SHORT


class HealthServer:
    def __init__(self, job_store: JobStore, orchestrator: PipelineOrchestrator,
                 stats_provider: Optional[Callable[[], Dict[str, Any]]] = None,
                 port: int = 8000):
        self.job_store = job_store
        self.orchestrator = orchestrator
        self.stats_provider = stats_provider or orchestrator.get_stats
        self.port = port
        self.app = FastAPI(title="Shorts Worker Dev API")
        self.setup_routes()
        self.server_thread = None
        self.running = False

    def setup_routes(self):
        """Setup API routes"""

        @self.app.get("/healthz")
        def health_check():
            """Health check endpoint"""
            try:
                state = self.job_store.load_state()
                return {
                    "ok": True,
                    "status": "healthy",
                    "queued": len(state.queue),
                    "busy": self.orchestrator.busy
                }
            except Exception as e:
                logger.error(f"Health check failed: {str(e)}")
                raise HTTPException(status_code=503, detail=f"Job store unavailable: {str(e)}")

        @self.app.post("/jobs")
        def enqueue_job(request: EnqueueRequest):
            """Queue a render for one audio source"""
            try:
                job = self.job_store.enqueue(
                    request.sourceKey,
                    title=request.title,
                    max_duration_seconds=request.maxDurationSeconds,
                    format=request.format
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"id": job.id, "status": job.status}

        @self.app.get("/jobs")
        def list_jobs(status: Optional[str] = None):
            """List job records (dev only)"""
            if status is not None and status not in JobStatus.ALL:
                raise HTTPException(status_code=400, detail=f"Unknown status: {status}")
            jobs = self.job_store.list_jobs(status)
            return {"count": len(jobs), "jobs": [job.to_dict() for job in jobs]}

        @self.app.get("/jobs/{job_id}")
        def get_job(job_id: str):
            """Status query for one job"""
            try:
                return self.job_store.get_status(job_id).to_dict()
            except JobNotFound as e:
                raise HTTPException(status_code=404, detail=str(e))

        @self.app.post("/jobs/process")
        def process_now():
            """Run one tick immediately; a no-op while a render is in flight"""
            job_id = self.orchestrator.tick()
            if job_id is None:
                return {"processed": False}
            return {"processed": True, "jobId": job_id}

        @self.app.get("/stats")
        def get_stats():
            """Get worker statistics"""
            try:
                counts = {status: 0 for status in JobStatus.ALL}
                for job in self.job_store.list_jobs():
                    counts[job.status] = counts.get(job.status, 0) + 1
                return {"jobs": counts, "worker": self.stats_provider()}
            except Exception as e:
                logger.error(f"Error getting stats: {str(e)}")
                raise HTTPException(status_code=500, detail=f"Error fetching stats: {str(e)}")

    def start(self):
        """Start the HTTP server in a background thread"""
        if self.running:
            return

        def run_server():
            try:
                uvicorn.run(
                    self.app,
                    host="0.0.0.0",
                    port=self.port,
                    log_level="warning",  # Reduce uvicorn logging
                    access_log=False
                )
            except Exception as e:
                logger.error(f"HTTP server error: {str(e)}")

        self.server_thread = Thread(target=run_server, daemon=True)
        self.server_thread.start()
        self.running = True

        logger.info(f"Dev HTTP server started on port {self.port}")

    def stop(self):
        """Stop the HTTP server"""
        self.running = False
        logger.info("Dev HTTP server stopped")


def start_health_server(job_store: JobStore, orchestrator: PipelineOrchestrator,
                        stats_provider: Optional[Callable[[], Dict[str, Any]]] = None,
                        enabled: Optional[bool] = None, port: Optional[int] = None) -> Optional[HealthServer]:
    """Start the dev server if enabled"""
    if enabled is None:
        enabled = os.getenv("WORKER_DEV_HTTP", "false").lower() == "true"
    if not enabled:
        return None
    if port is None:
        port = int(os.getenv("WORKER_HTTP_PORT", "8000"))
    server = HealthServer(job_store, orchestrator, stats_provider, port)
    server.start()
    return server
