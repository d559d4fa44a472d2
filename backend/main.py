import os
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from backend.config import AUDIT_CAPACITY, configure_logging, load_config
from data.fetch_live_metrics import build_metrics_source
from decision.reconciler import ReplicaController
from k8s.deployment_controller import build_actuator, get_current_replicas, init_k8s_client


class PredictRequest(BaseModel):
    rps: float


def build_controller(config=None):
    """
    Wire config, metrics source and actuator into a controller.

    Raises:
        ValueError: If the configuration is invalid
        RuntimeError: If the Kubernetes client cannot be built
    """
    config = config or load_config()
    apps_api = init_k8s_client()
    initial = get_current_replicas(apps_api, config.namespace, config.deployment, config.min_replicas)
    logging.info(f"Initial replicas for {config.namespace}/{config.deployment}: {initial}")
    return ReplicaController(
        config,
        metrics_source=build_metrics_source(config),
        actuator=build_actuator(config, apps_api),
        initial_replicas=initial,
    )


def create_app(controller: Optional[ReplicaController] = None, start_loop: bool = True) -> FastAPI:
    """
    Build the HTTP surface over a controller.

    Without a controller one is built from the environment at startup.
    The reconcile loop runs for the lifetime of the app when `start_loop`
    is set.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.controller is None:
            configure_logging()
            app.state.controller = build_controller()
        if start_loop:
            app.state.controller.start()
        logging.info("Autoscaler running")
        try:
            yield
        finally:
            if start_loop:
                app.state.controller.stop()

    app = FastAPI(title="Replica Autoscaler", lifespan=lifespan)
    app.state.controller = controller

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Origin", "Content-Type"],
        allow_credentials=False,
        max_age=12 * 60 * 60,
    )

    @app.exception_handler(RequestValidationError)
    async def bad_request(request: Request, exc: RequestValidationError):
        logging.warning(f"Rejected {request.method} {request.url.path}: {exc.errors()}")
        detail = "bad json" if request.url.path == "/predict" else "invalid request"
        return JSONResponse(status_code=400, content={"detail": detail})

    @app.get("/healthz", response_class=PlainTextResponse)
    def healthz():
        return "ok"

    @app.get("/events")
    def events(limit: Optional[int] = Query(None, ge=1, le=AUDIT_CAPACITY)):
        """Audit trail of past decisions, oldest first."""
        decisions = app.state.controller.audit_events()
        if limit is not None:
            decisions = decisions[-limit:]
        return [d.to_dict() for d in decisions]

    @app.post("/predict")
    def predict(body: PredictRequest):
        """What-if: run the scaling rule against a synthetic request rate."""
        try:
            return app.state.controller.predict(body.rps).to_dict()
        except ValueError as e:
            logging.warning(f"Rejected prediction input: {e}")
            raise HTTPException(status_code=400, detail="bad json")
        except Exception as e:
            logging.error(f"Prediction error: {e}")
            raise HTTPException(status_code=500, detail=f"Internal error: {str(e)}")

    @app.get("/status")
    def status():
        return app.state.controller.status()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", 8080)))
