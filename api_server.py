"""
FastAPI backend server for CodeShield.
This provides REST API endpoints for the security knowledge frontend.
"""

from __future__ import annotations

import os
from typing import List, Optional

from fastapi import Depends, FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from codeshield.config import load_settings, validate_settings
from codeshield.errors import (
    CodeShieldError,
    EmptyContent,
    InvalidRepositoryUrl,
    SourceHostError,
    UnsupportedFileType,
)
from codeshield.rag.service import RAGService, close_rag_service, get_rag_service
from codeshield.utils import setup_logging

# Setup logging
logger = setup_logging()

# Initialize FastAPI app
app = FastAPI(
    title="CodeShield API",
    description="REST API for CodeShield - compliance-aware secure coding assistant",
    version="0.1.0",
)

# Configure CORS for frontend access
allowed_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",  # Vite dev server
]

frontend_url = os.getenv("FRONTEND_URL")
if frontend_url:
    allowed_origins.append(frontend_url)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    """Validate configuration and initialize the knowledge pipeline."""
    settings = load_settings()
    for problem in validate_settings(settings):
        logger.warning(f"Configuration: {problem}")
    if not settings.openai.api_key:
        logger.warning("No provider key configured; running with fallback embeddings and answers")

    try:
        await get_rag_service(settings)
    except Exception as e:
        logger.error(f"Failed to initialize RAG service: {e}")
        raise


@app.on_event("shutdown")
async def shutdown_event():
    await close_rag_service()


# Pydantic models for API requests
class QueryRequest(BaseModel):
    query: str
    language: Optional[str] = None


class RepoFileRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    repo_url: str = Field(alias="repoUrl")
    file_path: str = Field(alias="filePath")


class QueryResponse(BaseModel):
    secure_code: Optional[str] = None
    insecure_code: Optional[str] = None
    explanation: str
    is_forbidden: bool = False
    forbidden_message: Optional[str] = None
    approved_alternative: Optional[str] = None
    danger_reason: Optional[str] = None
    sources: List[str] = []
    used_fallback: bool = False


async def get_service() -> RAGService:
    """Request dependency returning the shared RAG service."""
    return await get_rag_service()


def _client_error(e: CodeShieldError) -> HTTPException:
    return HTTPException(status_code=400, detail=str(e))


@app.get("/")
async def root():
    return {"status": "ok", "service": "CodeShield API"}


@app.get("/api/health")
async def health(service: RAGService = Depends(get_service)):
    """Health check with store and provider status."""
    try:
        total_chunks = await service.store.count()
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return {
        "status": "ok",
        "store_backend": service.settings.rag.store_backend,
        "provider_available": service.provider.available,
        "github_configured": service.github.available,
        "total_chunks": total_chunks,
    }


@app.post("/api/query", response_model=QueryResponse)
async def query(request: QueryRequest, service: RAGService = Depends(get_service)):
    """Answer a secure coding question from the knowledge base."""
    try:
        answer = await service.query(request.query, language=request.language)
        return answer.to_dict()
    except EmptyContent as e:
        raise _client_error(e)
    except Exception as e:
        logger.error(f"Query failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/upload")
async def upload(
    file: UploadFile = File(...),
    service: RAGService = Depends(get_service),
):
    """Upload a Markdown, text or PDF security document."""
    try:
        content = await file.read()
        if not content:
            raise HTTPException(status_code=400, detail="No file uploaded")

        result = await service.ingest_upload(content, file.content_type, file.filename)
        return {
            "message": "File processed successfully",
            **result.to_dict(),
        }
    except HTTPException:
        raise
    except (EmptyContent, UnsupportedFileType) as e:
        raise _client_error(e)
    except Exception as e:
        logger.error(f"Upload failed for {file.filename}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/github/repos")
async def github_repos(service: RAGService = Depends(get_service)):
    """List repositories of the authenticated GitHub user."""
    try:
        return {"repos": await service.list_repositories()}
    except SourceHostError as e:
        logger.error(f"Listing GitHub repositories failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))


@app.get("/api/github/tree")
async def github_tree(
    repoUrl: str,
    branch: Optional[str] = None,
    service: RAGService = Depends(get_service),
):
    """List file paths of a repository branch."""
    try:
        return await service.list_repository_files(repoUrl, branch)
    except InvalidRepositoryUrl as e:
        raise _client_error(e)
    except SourceHostError as e:
        logger.error(f"Fetching tree for {repoUrl} failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))


@app.post("/api/github/scan")
async def github_scan(request: RepoFileRequest, service: RAGService = Depends(get_service)):
    """Ingest a repository file into the knowledge base."""
    try:
        result = await service.scan_repository_file(request.repo_url, request.file_path)
        return {"message": "File ingested successfully", **result.to_dict()}
    except (InvalidRepositoryUrl, EmptyContent) as e:
        raise _client_error(e)
    except SourceHostError as e:
        logger.error(f"Scanning {request.file_path} failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        logger.error(f"Scanning {request.file_path} failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/github/analyze-file")
async def github_analyze_file(
    request: RepoFileRequest,
    service: RAGService = Depends(get_service),
):
    """Compliance-check a repository file against the knowledge base."""
    try:
        verdict = await service.analyze_repository_file(request.repo_url, request.file_path)
        return verdict.to_dict()
    except (InvalidRepositoryUrl, EmptyContent) as e:
        raise _client_error(e)
    except SourceHostError as e:
        logger.error(f"Analyzing {request.file_path} failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        logger.error(f"Analyzing {request.file_path} failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/stats")
async def stats(service: RAGService = Depends(get_service)):
    """Knowledge store statistics."""
    try:
        return await service.get_stats()
    except Exception as e:
        logger.error(f"Stats failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
