import asyncio
import os
import shutil
import logging
from fastapi import Depends, FastAPI, UploadFile, File, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from app.config import settings
from app.dependencies import get_answer_service, get_document_store, loaded_answer_service
from app.documents import DocumentStore
from app.errors import InferenceError, TokenizationError, VocabularyError
from app.models import (
    AskRequest,
    AskResponse,
    DocumentCreate,
    DocumentList,
    DocumentResponse,
    DocumentSummary,
    DocumentUpdate,
    ErrorResponse,
    UploadResponse,
)
from app.service import AnswerService
from app.utils import extract_text_from_pdf

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger("doc-answer-finder")

# 1) Ensure an upload directory exists
UPLOAD_DIR = "uploads"
os.makedirs(UPLOAD_DIR, exist_ok=True)

# 2) Initialize FastAPI
app = FastAPI(title="Document Answer Finder")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

def _error(status_code: int, error: str, detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, detail=detail).model_dump(),
    )

def _not_found(document_id: str) -> JSONResponse:
    return _error(404, "not_found", f"No document with id {document_id}.")

@app.on_event("startup")
async def on_startup():
    store = get_document_store()
    logger.info("Loaded %d documents", len(store))

@app.on_event("shutdown")
async def on_shutdown():
    try:
        get_document_store().save(settings.documents_path)
    except OSError:
        logger.exception("Failed to save documents")
    # only tear down the worker pool if a model was ever loaded
    service = loaded_answer_service()
    if service is not None:
        service.shutdown(wait=False)

@app.get("/")
async def root():
    return RedirectResponse(url="/docs")

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Validation error: %s", exc)
    return _error(422, "validation_error", str(exc))

@app.exception_handler(TokenizationError)
async def tokenization_exception_handler(request: Request, exc: TokenizationError):
    logger.warning("Tokenization error: %s", exc)
    return _error(400, "tokenization_error", str(exc))

@app.exception_handler(VocabularyError)
async def vocabulary_exception_handler(request: Request, exc: VocabularyError):
    logger.error("Vocabulary unavailable: %s", exc)
    return _error(503, "vocabulary_unavailable", str(exc))

@app.exception_handler(InferenceError)
async def inference_exception_handler(request: Request, exc: InferenceError):
    logger.warning("Inference error: %s", exc)
    return _error(503, "inference_error", str(exc))

@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error")
    return _error(500, "internal_error", "An unexpected error occurred.")

@app.get("/health")
async def health_check():
    return {"status": "healthy"}

@app.get("/documents", response_model=DocumentList)
async def list_documents(store: DocumentStore = Depends(get_document_store)):
    return DocumentList(
        documents=[DocumentSummary(id=d.id, title=d.title, version=d.version) for d in store.list()]
    )

@app.post("/documents", response_model=DocumentResponse, status_code=201)
async def create_document(req: DocumentCreate, store: DocumentStore = Depends(get_document_store)):
    doc = store.create(title=req.title, body=req.body)
    return DocumentResponse.from_document(doc)

@app.get("/documents/{document_id}", response_model=DocumentResponse, responses={404: {"model": ErrorResponse}})
async def get_document(document_id: str, store: DocumentStore = Depends(get_document_store)):
    doc = store.get(document_id)
    if doc is None:
        return _not_found(document_id)
    return DocumentResponse.from_document(doc)

@app.put("/documents/{document_id}", response_model=DocumentResponse, responses={404: {"model": ErrorResponse}})
async def update_document(document_id: str, req: DocumentUpdate, store: DocumentStore = Depends(get_document_store)):
    doc = store.replace_body(document_id, req.body, title=req.title)
    if doc is None:
        return _not_found(document_id)
    return DocumentResponse.from_document(doc)

@app.delete("/documents/{document_id}", status_code=204, responses={404: {"model": ErrorResponse}})
async def delete_document(document_id: str, store: DocumentStore = Depends(get_document_store)):
    if not store.delete(document_id):
        return _not_found(document_id)
    return Response(status_code=204)

@app.post(
    "/documents/{document_id}/ask",
    response_model=AskResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def ask_document(
    document_id: str,
    req: AskRequest,
    store: DocumentStore = Depends(get_document_store),
    service: AnswerService = Depends(get_answer_service),
):
    snapshot = store.snapshot(document_id, req.question)
    if snapshot is None:
        return _not_found(document_id)

    # Inference runs on a worker thread; the result is marshaled back onto the event loop.
    result = await asyncio.wrap_future(service.submit_request(snapshot))

    if not store.is_current(snapshot):
        logger.info("Discarding answer for document %s v%d: body changed", document_id, snapshot.version)
        return _error(409, "stale_document", "The document changed while the question was being answered.")
    return AskResponse.from_result(snapshot, result)

@app.post("/upload-pdf", response_model=UploadResponse, status_code=201, responses={400: {"model": ErrorResponse}, 413: {"model": ErrorResponse}, 500: {"model": ErrorResponse}})
async def upload_pdf(file: UploadFile = File(...), store: DocumentStore = Depends(get_document_store)):
    if not file.filename.lower().endswith(".pdf"):
        raise HTTPException(status_code=400, detail="Only PDF files are accepted.")

    file.file.seek(0, os.SEEK_END)
    size = file.file.tell()
    file.file.seek(0)
    if size == 0:
        raise HTTPException(status_code=400, detail="Empty file.")
    if size > settings.max_upload_bytes:
        return _error(413, "file_too_large", f"File exceeds {settings.max_upload_mb} MB")

    temp_path = os.path.join(UPLOAD_DIR, os.path.basename(file.filename))
    try:
        with open(temp_path, "wb") as f:
            shutil.copyfileobj(file.file, f)
    except OSError as e:
        logger.exception("Failed to write upload")
        raise HTTPException(status_code=500, detail=f"Failed to save upload: {e}")

    try:
        body = extract_text_from_pdf(temp_path)
    except Exception as e:
        logger.exception("PDF extraction failed")
        raise HTTPException(status_code=400, detail=f"Failed to read PDF: {e}")
    finally:
        os.remove(temp_path)

    if not body.strip():
        raise HTTPException(status_code=400, detail="No text found in PDF.")

    doc = store.create(title=os.path.splitext(file.filename)[0], body=body)
    return UploadResponse(
        filename=file.filename,
        document=DocumentSummary(id=doc.id, title=doc.title, version=doc.version),
        num_chars=len(body),
        message="PDF text imported as a new document.",
    )

@app.get("/stats")
async def stats(store: DocumentStore = Depends(get_document_store)):
    return {
        "document_count": len(store),
        "model": settings.model_name,
        "max_sequence_length": settings.max_sequence_length,
    }
