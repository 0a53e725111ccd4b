import logging
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from alertflow.core.errors import ValidationError, WorkflowError
from alertflow.routes.alerts import router as alerts_router
from alertflow.routes.incidents import router as incidents_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Alertflow")

app.include_router(alerts_router)
app.include_router(incidents_router)


# ---------- Manejo de errores ----------
@app.exception_handler(WorkflowError)
def workflow_error_handler(request: Request, exc: WorkflowError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
def request_validation_handler(request: Request, exc: RequestValidationError):
    messages = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{field}: {error.get('msg')}" if field else error.get("msg"))
    error = ValidationError("; ".join(messages) or "Invalid request")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# ---------- Ruta de salud ----------
@app.get("/")
def health_check():
    return {"status": "ok"}
