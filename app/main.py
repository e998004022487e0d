from fastapi import FastAPI, Response

from app.core.logging import configure_logging, get_logger, new_request_id
from app.schemas.analysis import AnalysisResult, AnalyzeRequest
from app.services.pipeline import analyze_document

configure_logging()
log = get_logger(__name__)

app = FastAPI(title="Document Task Agent", version="0.2.0")


@app.get("/health")
def health():
    return {"status": "ok"}


# -------------------------
# API Layer (JSON endpoint)
# -------------------------
@app.post("/v1/analyze", response_model=AnalysisResult)
def analyze(req: AnalyzeRequest, response: Response):
    request_id = new_request_id()
    response.headers["X-Request-Id"] = request_id

    log.info(f"[{request_id}] /v1/analyze START file={req.file_name!r} chars={len(req.content)}")

    result = analyze_document(req.content, req.file_name, request_id=request_id)

    log.info(f"[{request_id}] /v1/analyze END outcome={result.analysis_outcome.value}")
    return result
