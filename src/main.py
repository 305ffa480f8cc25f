"""
Tonie Uploader Service
FastAPI backend-for-frontend that uploads audio (from the device or from YouTube)
as new chapters onto Creative-Tonies via the Tonie cloud API.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Type, TypeVar

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ValidationError
import uvicorn

from audio_fetcher import RemoteAudioFetcher
from config.platform import AppConfig, Config
from credential_gate import CredentialGate
from directory import TonieDirectory
from errors import AuthorizationDenied, MissingFields, TonieUploaderError
from models import AuthActionRequest, HealthResponse, HouseholdsRequest, UrlUploadRequest
from orchestrator import UploadOrchestrator, iso_timestamp
from tonie_auth import TonieSessionProvider
from tonie_client import TonieApiClient

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if Config.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

ROUTE_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

BodyT = TypeVar("BodyT", bound=BaseModel)


@dataclass
class Services:
    config: AppConfig
    gate: CredentialGate
    session_provider: TonieSessionProvider
    api_client: TonieApiClient
    directory: TonieDirectory
    orchestrator: UploadOrchestrator


def build_services(config: AppConfig) -> Services:
    gate = CredentialGate(config)
    session_provider = TonieSessionProvider(config)
    api_client = TonieApiClient(config)
    directory = TonieDirectory(api_client)
    orchestrator = UploadOrchestrator(
        config,
        gate=gate,
        session_provider=session_provider,
        api_client=api_client,
        directory=directory,
        fetcher=RemoteAudioFetcher(config),
    )
    return Services(config, gate, session_provider, api_client, directory, orchestrator)


services: Optional[Services] = None
start_time: float = time.time()


def get_services() -> Services:
    global services
    if services is None:
        services = build_services(AppConfig.from_env())
    return services


app = FastAPI(
    title="Tonie Uploader",
    version=Config.VERSION,
    description="Upload audio files and YouTube audio as Creative-Tonie chapters",
)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


@app.middleware("http")
async def cors_headers(request: Request, call_next):
    """Permissive CORS headers on every response; preflights reach the routes."""
    response = await call_next(request)
    for name, value in CORS_HEADERS.items():
        response.headers[name] = value
    return response


@app.on_event("startup")
async def startup():
    global start_time

    start_time = time.time()
    svc = get_services()

    missing = svc.config.missing_settings()
    if missing:
        logger.warning(f"Missing configuration: {', '.join(missing)} - uploads will fail")

    logger.info(f"✓ Service started on {svc.config.platform}")
    logger.info(f"✓ Tonie API: {svc.config.tonie_api_base}")


def _preflight_or_reject(request: Request) -> Optional[Response]:
    if request.method == "OPTIONS":
        return Response(status_code=200)
    if request.method != "POST":
        return JSONResponse(status_code=405, content={"error": "Method not allowed"})
    return None


def _error_response(exc: TonieUploaderError) -> JSONResponse:
    return JSONResponse(status_code=exc.http_status, content=exc.to_response())


def _internal_error(exc: Exception, context: str) -> JSONResponse:
    logger.error(f"{context} error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "details": str(exc)},
    )


async def _json_body(request: Request) -> Dict[str, Any]:
    try:
        data = await request.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


async def _parse_body(request: Request, model: Type[BodyT]) -> BodyT:
    try:
        return model.model_validate(await _json_body(request))
    except ValidationError as e:
        raise MissingFields("Invalid request body", details=str(e))


@app.get("/health", response_model=HealthResponse)
async def health_check():
    svc = get_services()
    return HealthResponse(
        status="ok",
        version=svc.config.version,
        platform=svc.config.platform,
        uptime_seconds=time.time() - start_time,
    )


@app.api_route("/api/auth", methods=ROUTE_METHODS)
async def auth(request: Request):
    if (early := _preflight_or_reject(request)) is not None:
        return early

    svc = get_services()
    try:
        body = await _parse_body(request, AuthActionRequest)

        if not svc.gate.verify(body.app_password):
            raise AuthorizationDenied()

        if body.action == "verify":
            return {
                "success": True,
                "message": "App password verified",
                "timestamp": iso_timestamp(),
            }

        if body.action == "tonie-login":
            token = await svc.session_provider.login()
            return {
                "success": True,
                "message": "Successfully authenticated with Tonie API",
                "sessionToken": token.access_token,
                "timestamp": iso_timestamp(),
            }

        return JSONResponse(
            status_code=400,
            content={"error": 'Invalid action. Use "verify" or "tonie-login"'},
        )

    except TonieUploaderError as e:
        return _error_response(e)
    except Exception as e:
        return _internal_error(e, "Auth")


@app.api_route("/api/households", methods=ROUTE_METHODS)
async def households(request: Request):
    if (early := _preflight_or_reject(request)) is not None:
        return early

    svc = get_services()
    try:
        body = await _parse_body(request, HouseholdsRequest)
        svc.gate.require(body.app_password)

        access_token = body.session_token
        if not access_token:
            access_token = (await svc.session_provider.login()).access_token

        listing = await svc.directory.list_households(access_token)
        return {
            "success": True,
            "households": listing,
            "timestamp": iso_timestamp(),
        }

    except TonieUploaderError as e:
        return _error_response(e)
    except Exception as e:
        return _internal_error(e, "Households")


@app.api_route("/api/upload-file", methods=ROUTE_METHODS)
async def upload_file(request: Request):
    if (early := _preflight_or_reject(request)) is not None:
        return early

    svc = get_services()
    try:
        raw_body = await request.body()
        logger.info(f"Received upload body of {len(raw_body)} bytes")
        return await svc.orchestrator.upload_from_device(
            raw_body,
            request.headers.get("content-type"),
        )

    except TonieUploaderError as e:
        return _error_response(e)
    except Exception as e:
        return _internal_error(e, "Upload file")


@app.api_route("/api/upload-from-youtube", methods=ROUTE_METHODS)
async def upload_from_youtube(request: Request):
    if (early := _preflight_or_reject(request)) is not None:
        return early

    svc = get_services()
    try:
        body = await _parse_body(request, UrlUploadRequest)
        return await svc.orchestrator.upload_from_url(
            body.app_password,
            body.tonie_id,
            body.title,
            body.url,
        )

    except TonieUploaderError as e:
        return _error_response(e)
    except Exception as e:
        return _internal_error(e, "YouTube upload")


if __name__ == "__main__":
    uvicorn.run(
        app,
        host=Config.HOST,
        port=Config.PORT,
        log_level="info",
    )
