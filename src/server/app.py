# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from src.assistant.errors import GatewayError, ValidationError
from src.assistant.gateway import AssistantGateway, BatchUploadResult, SingleUploadResult
from src.assistant.uploader import SingleFileSource, UploadSource, resolve_upload_source
from src.server.cache import ResponseCache
from src.server.chat_request import (
    AttachmentListResponse,
    ChatRequest,
    ChatResponse,
    FileListResponse,
    NewThreadRequest,
    NewThreadResponse,
    StoredFile,
    UploadFailure,
    UploadResponse,
)
from src.server.config_request import ConfigResponse
from src.server.conversation.base import ConversationStore
from src.server.conversation.router import router as conversation_router
from src.server.dependencies import (
    get_configuration,
    get_conversation_store,
    get_current_user_id,
    get_gateway,
    get_response_cache,
    initialise_conversation_store,
    initialise_response_cache,
    set_conversation_store,
)

logger = logging.getLogger(__name__)

INTERNAL_SERVER_ERROR_DETAIL = "Internal Server Error"


@asynccontextmanager
async def lifespan(_: FastAPI):
    store = initialise_conversation_store()
    await store.init()
    set_conversation_store(store)
    cache = initialise_response_cache()
    await cache.start()
    try:
        yield
    finally:
        await cache.stop()
        await store.close()


app = FastAPI(
    title="Assistant Gateway API",
    description="Chat and file ingestion proxy for hosted assistants",
    version="0.1.0",
    lifespan=lifespan,
)

allowed_origins = get_configuration().allowed_origins
logger.info(f"Allowed origins: {allowed_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(conversation_router)


@app.middleware("http")
async def log_api_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    path = request.url.path
    if path.startswith("/api"):
        duration_ms = (time.perf_counter() - start) * 1000
        level = logging.ERROR if response.status_code >= 400 else logging.INFO
        logger.log(level, "%s %s %d in %.0fms", request.method, path, response.status_code, duration_ms)
    return response


@app.exception_handler(GatewayError)
async def gateway_error_handler(_: Request, exc: GatewayError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    messages = [
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', 'invalid')}"
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"kind": "validation_error", "detail": "; ".join(messages)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content={"kind": "internal_error", "detail": INTERNAL_SERVER_ERROR_DETAIL},
    )


@app.get("/api/health")
async def health():
    return {"status": "ok"}


@app.get("/api/config", response_model=ConfigResponse)
async def config():
    """Get the public config of the gateway."""
    settings = get_configuration()
    return ConfigResponse(
        assistant_configured=bool(settings.assistant_id),
        upload_extensions=list(settings.upload_extensions),
        upload_max_file_bytes=settings.upload_max_file_bytes,
        poll_interval=settings.poll_interval,
        max_poll_attempts=settings.max_poll_attempts,
        thread_store_backend=settings.thread_store_backend,
    )


@app.post("/api/thread/new", response_model=NewThreadResponse)
async def new_thread(
    request: Optional[NewThreadRequest] = None,
    user_id: str = Depends(get_current_user_id),
    gateway: AssistantGateway = Depends(get_gateway),
) -> NewThreadResponse:
    request = request or NewThreadRequest()
    conversation = await gateway.new_thread(
        user_id,
        assistant_id=request.assistant_id,
        fresh=request.fresh,
    )
    return NewThreadResponse(thread_id=conversation.thread_id, conversation_id=conversation.id)


@app.post("/api/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    user_id: str = Depends(get_current_user_id),
    gateway: AssistantGateway = Depends(get_gateway),
) -> ChatResponse:
    reply = await gateway.chat(request.thread_id or "", request.message or "", user_id=user_id)
    return ChatResponse(text=reply.text, run_id=reply.run_id, message_id=reply.message_id)


@app.post("/api/upload", response_model=UploadResponse)
async def upload(
    file: Optional[UploadFile] = File(default=None),
    directory: Optional[str] = Form(default=None, alias="dir"),
    assistant_id: Optional[str] = Form(default=None),
    purpose: Optional[str] = Form(default=None),
    user_id: str = Depends(get_current_user_id),
    gateway: AssistantGateway = Depends(get_gateway),
    cache: ResponseCache = Depends(get_response_cache),
) -> UploadResponse:
    single: Optional[SingleFileSource] = None
    if file is not None and file.filename:
        single = SingleFileSource(
            filename=file.filename,
            data=await _read_within_limit(file, gateway.config.upload_max_file_bytes),
            purpose=purpose or gateway.config.upload_purpose,
        )
    source = resolve_upload_source(file=single, directory=directory)
    return await _run_upload(source, user_id, assistant_id, gateway, cache)


async def _read_within_limit(file: UploadFile, limit: int) -> bytes:
    """Reads an upload without ever buffering more than `limit + 1` bytes."""
    if file.size is not None and file.size > limit:
        raise ValidationError(f"{file.filename} is {file.size} bytes; the limit is {limit} bytes")
    data = await file.read(limit + 1)
    if len(data) > limit:
        raise ValidationError(f"{file.filename} exceeds the limit of {limit} bytes")
    return data


class DirectoryUploadRequest(BaseModel):
    dir: Optional[str] = None
    assistant_id: Optional[str] = None


@app.post("/api/upload-directory", response_model=UploadResponse)
async def upload_directory(
    request: DirectoryUploadRequest,
    user_id: str = Depends(get_current_user_id),
    gateway: AssistantGateway = Depends(get_gateway),
    cache: ResponseCache = Depends(get_response_cache),
) -> UploadResponse:
    source = resolve_upload_source(directory=request.dir)
    return await _run_upload(source, user_id, request.assistant_id, gateway, cache)


async def _run_upload(
    source: UploadSource,
    user_id: str,
    assistant_id: Optional[str],
    gateway: AssistantGateway,
    cache: ResponseCache,
) -> UploadResponse:
    result = await gateway.upload(source, user_id=user_id, assistant_id=assistant_id)
    cache.invalidate(f"/api/assistants/{result.assistant_id}/")

    if isinstance(result, SingleUploadResult):
        return UploadResponse(
            assistant_id=result.assistant_id,
            uploaded=1,
            file_ids=result.file_ids,
            uploaded_ids=[result.file_id],
            message=f"Successfully uploaded {result.filename}",
        )

    batch: BatchUploadResult = result
    message = f"Successfully uploaded {batch.uploaded} file(s)"
    if batch.failures:
        message = f"{message}; {len(batch.failures)} failed"
    return UploadResponse(
        assistant_id=batch.assistant_id,
        uploaded=batch.uploaded,
        file_ids=batch.file_ids,
        uploaded_ids=batch.uploaded_ids,
        failures=[UploadFailure(**failure) for failure in batch.failures],
        message=message,
    )


@app.get("/api/assistants/{assistant_id}/files", response_model=AttachmentListResponse)
async def assistant_files(
    assistant_id: str,
    gateway: AssistantGateway = Depends(get_gateway),
    cache: ResponseCache = Depends(get_response_cache),
) -> AttachmentListResponse:
    key = f"/api/assistants/{assistant_id}/files"
    cached = cache.get(key)
    if cached is not None:
        return cached
    response = AttachmentListResponse(assistant_id=assistant_id, file_ids=await gateway.attachments(assistant_id))
    cache.set(key, response)
    return response


@app.get("/api/files", response_model=FileListResponse)
async def list_files(
    assistant_id: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    store: ConversationStore = Depends(get_conversation_store),
) -> FileListResponse:
    records = await store.list_files(user_id=user_id, assistant_id=assistant_id)
    return FileListResponse(
        files=[
            StoredFile(
                id=record.id,
                remote_file_id=record.remote_file_id,
                filename=record.filename,
                purpose=record.purpose,
                bytes=record.bytes,
                assistant_id=record.assistant_id,
            )
            for record in records
        ]
    )
