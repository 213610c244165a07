import hmac
import json
import logging
from contextlib import asynccontextmanager
from typing import Optional, Union

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, HTTPException, Path, Request, Response
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, ValidationError
from starlette.requests import ClientDisconnect

from reopener import config
from reopener.commands import parse_command
from reopener.dashboard import render_dashboard
from reopener.helpscout import HelpScoutClient
from reopener.reconcile import ReopenJob
from reopener.signature import verify_signature
from reopener.store import ScheduleStore

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-HelpScout-Signature"
JOBS_SECRET_HEADER = "X-Reopener-Secret"


class WebhookPayload(BaseModel):
    """The parts of a Help Scout conversation webhook we look at."""

    id: Union[int, str]
    preview: Optional[str] = None
    status: Optional[str] = None


def create_app(
    store: ScheduleStore,
    client: HelpScoutClient,
    webhook_secret: str = config.HS_SECRET,
    allow_unsigned: bool = config.ALLOW_UNSIGNED_WEBHOOKS,
    jobs_secret: str = config.JOBS_SECRET,
    schedule: bool = True,
) -> FastAPI:
    job = ReopenJob(store, client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        missing = config.missing_settings()
        if missing:
            logger.warning("Missing settings: %s", ", ".join(missing))

        store.open()
        scheduler = None
        if schedule:
            scheduler = AsyncIOScheduler(timezone="UTC")
            scheduler.add_job(
                job.tick, "cron",
                hour=config.RECONCILE_CRON_HOURS, minute=0,
                id="reopen", max_instances=1, coalesce=True, replace_existing=True,
            )
            scheduler.start()
            logger.info("Reopen job scheduled (hour=%s)", config.RECONCILE_CRON_HOURS)

        yield

        if scheduler is not None:
            scheduler.shutdown(wait=False)
        await client.aclose()
        store.close()

    app = FastAPI(title="Help Scout reopener", lifespan=lifespan)
    app.state.store = store
    app.state.job = job

    # ==========================
    # Auth helper (jobs)
    # ==========================
    def _auth_or_401(request: Request) -> None:
        secret = request.headers.get(JOBS_SECRET_HEADER) or ""
        if not jobs_secret or not hmac.compare_digest(
            secret.encode("utf-8"), jobs_secret.encode("utf-8")
        ):
            raise HTTPException(status_code=401, detail="Unauthorized")

    # ==========================
    # Webhook
    # ==========================
    @app.post("/")
    async def helpscout_webhook(request: Request):
        try:
            raw_body = await request.body()
        except ClientDisconnect:
            logger.error("Can't read request body")
            raise HTTPException(status_code=400, detail="Bad request")

        signature = request.headers.get(SIGNATURE_HEADER)
        if not signature:
            if allow_unsigned:
                logger.info("Signature missing, ignoring request")
                return {"received": True, "ignored": "unsigned"}
            logger.warning("Signature missing, rejecting request")
            raise HTTPException(status_code=400, detail="Bad request")

        if not verify_signature(webhook_secret, raw_body, signature):
            logger.warning("Invalid webhook signature")
            raise HTTPException(status_code=400, detail="Bad request")

        try:
            payload = WebhookPayload.model_validate(json.loads(raw_body.decode("utf-8")))
        except (ValueError, ValidationError):
            logger.warning("Unparseable webhook body")
            raise HTTPException(status_code=400, detail="Bad request")

        command = parse_command(payload.preview)
        if command is None:
            return {"received": True, "scheduled": False}

        conversation_id = str(payload.id)
        store.put(conversation_id, command.due_at)
        logger.info(
            "Scheduled reopen of %s at %s (status=%s)",
            conversation_id, command.arg, payload.status,
        )
        return {"received": True, "scheduled": True}

    @app.api_route("/", methods=["PUT", "PATCH", "DELETE"])
    async def method_not_allowed():
        return Response(status_code=405, headers={"Allow": "POST"})

    # ==========================
    # Schedules (dashboard + delete)
    # ==========================
    @app.get("/", response_class=HTMLResponse)
    async def schedules_dashboard():
        return HTMLResponse(render_dashboard(store.list_all()))

    @app.delete("/api/delete/{conversation_id}")
    async def delete_schedule(conversation_id: str = Path(pattern=r"^\d+$")):
        existed = store.delete(conversation_id)
        logger.info("Deleting schedule %s (existed=%s)", conversation_id, existed)
        return {"deleted": existed}

    # ==========================
    # Jobs
    # ==========================
    @app.post("/jobs/reopen")
    async def run_reopen_job(request: Request):
        _auth_or_401(request)
        return await job.tick()

    @app.get("/health")
    async def health():
        return {"ok": True, "scheduled": store.count(), "reconciling": job.running}

    return app


app = create_app(
    ScheduleStore(config.DB_PATH),
    HelpScoutClient(config.HS_APP_ID, config.HS_APP_SECRET),
)


def run() -> None:
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=config.PORT)


if __name__ == "__main__":
    run()
