# backend/safe_report/main.py
from __future__ import annotations

import asyncio
import binascii
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, settings as default_settings
from .errors import MergeFailure, RenderFailure, ReportServiceError
from .jobs import RENDERING, SENDING, DeliveryJob, DeliveryJobStore
from .leads import LeadRecorder
from .log import get_logger
from .mailer import DeliveryDispatcher
from .merger import GeneratedDocument
from .models import GeneratePdfIn, SendEmailIn, recipient_list
from .renderer import ReportRenderer

LOG = get_logger("server")


def _fail(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


def create_app(
    settings: Optional[Settings] = None,
    renderer: Optional[ReportRenderer] = None,
    dispatcher: Optional[DeliveryDispatcher] = None,
    recorder: Optional[LeadRecorder] = None,
    jobs: Optional[DeliveryJobStore] = None,
) -> FastAPI:
    s = settings or default_settings
    recorder = recorder or LeadRecorder(s.leads_file)
    renderer = renderer or ReportRenderer(s)
    dispatcher = dispatcher or DeliveryDispatcher(s, recorder)
    jobs = jobs or DeliveryJobStore()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        LOG.info(f"Server ready on port {s.port} (send mode: {s.send_email_mode})")
        yield
        await renderer.close()

    app = FastAPI(title="SAFE Report Service", lifespan=lifespan)
    app.state.settings = s
    app.state.renderer = renderer
    app.state.dispatcher = dispatcher
    app.state.recorder = recorder
    app.state.jobs = jobs

    # -------------------------------------------------------------------------
    # CORS (adjust via env)
    # -------------------------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=s.cors_allow_origins,
        allow_credentials="*" not in s.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.monotonic()
        response = await call_next(request)
        LOG.info(f"{request.method} {request.url.path} -> {response.status_code} "
                 f"({(time.monotonic() - started) * 1000:.0f}ms)")
        return response

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        LOG.warning(f"Rejected {request.url.path}: {exc.errors()}")
        return _fail(400, "Invalid request body")

    # -------------------------------------------------------------------------
    # API endpoints
    # -------------------------------------------------------------------------
    @app.get("/")
    async def health():
        return {"status": "ok"}

    @app.post("/generate-pdf")
    async def generate_pdf(body: GeneratePdfIn):
        if body.report_data is None:
            return _fail(400, "Missing report data")

        to_list = recipient_list(body.to_email)
        if body.lead_data and to_list:
            await asyncio.to_thread(recorder.record, to_list[0], body.lead_data)

        try:
            document = await renderer.render(body.report_data)
        except (RenderFailure, MergeFailure) as e:
            LOG.error(f"Error in /generate-pdf: {e}", exc_info=True)
            return _fail(500, "Failed to generate PDF")

        LOG.info(f"/generate-pdf produced {document.page_count} pages, {len(document)} bytes")
        return {"success": True, "pdfBase64": document.to_base64()}

    @app.post("/send-email")
    async def send_email(body: SendEmailIn, background_tasks: BackgroundTasks):
        recipients = recipient_list(body.to_email)
        if not recipients or (not body.pdf_base64 and body.report_data is None):
            return _fail(400, "Missing required data")

        pre_rendered = None
        if body.pdf_base64:
            try:
                pre_rendered = GeneratedDocument.from_base64(body.pdf_base64)
            except (binascii.Error, ValueError):
                return _fail(400, "Invalid pdfBase64")

        async def deliver(job: Optional[DeliveryJob] = None):
            document = pre_rendered
            if document is None:
                if job:
                    job.status = RENDERING
                document = await renderer.render(body.report_data)
            if job:
                job.status = SENDING
            return await dispatcher.send(recipients, document, body.summary_data)

        if s.send_email_mode == "inline":
            try:
                receipt = await deliver()
            except ReportServiceError as e:
                LOG.error(f"Failed to send email to {recipients[0]}: {e}", exc_info=True)
                return _fail(500, "Failed to send email")
            return {"success": True, "message": "Email sent successfully", "messageId": receipt.message_id}

        job = jobs.create(recipients[0])
        background_tasks.add_task(jobs.run, job, deliver)
        return {
            "success": True,
            "message": f"Your report is being processed and will be sent to {', '.join(recipients)} momentarily.",
            "jobId": job.id,
        }

    @app.get("/send-email/{job_id}")
    async def send_email_status(job_id: str):
        job = jobs.get(job_id)
        if job is None:
            return _fail(404, "Unknown job")
        return job.as_dict()

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("safe_report.main:app", host="0.0.0.0", port=default_settings.port)


if __name__ == "__main__":
    run()
