from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import StreamingResponse
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

from app.core.clients import build_clients
from app.core.config import Settings
from app.models.schemas import (
    ExtractionRequest, FreeBriefRequest, RefinementRequest,
    StrategyContextRequest, StrategyRequest,
)
from app.services.dispatcher import create_logging_dispatcher
from app.services.generation import (
    free_brief_event_generator,
    refinement_event_generator,
    strategy_context_event_generator,
    strategy_event_generator,
)
from strategy_agent.formatter import extract_structured_output

# Load environment variables
load_dotenv()


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = Settings.from_env()
    app.state.clients = build_clients(settings)
    app.state.dispatcher = create_logging_dispatcher()
    yield
    await app.state.clients.aclose()


app = FastAPI(title="Growth Strategy API", lifespan=lifespan)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Adjust in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.post("/generate-strategy")
async def generate_strategy_endpoint(request: StrategyRequest, raw_request: Request):
    state = raw_request.app.state
    return StreamingResponse(
        strategy_event_generator(state.clients, request, state.dispatcher),
        media_type="text/event-stream"
    )


@app.post("/generate-brief")
async def generate_brief_endpoint(request: FreeBriefRequest, raw_request: Request):
    state = raw_request.app.state
    return StreamingResponse(
        free_brief_event_generator(state.clients, request, state.dispatcher),
        media_type="text/event-stream"
    )


@app.post("/refine-strategy")
async def refine_strategy_endpoint(request: RefinementRequest, raw_request: Request):
    state = raw_request.app.state
    return StreamingResponse(
        refinement_event_generator(state.clients, request, state.dispatcher),
        media_type="text/event-stream"
    )


@app.post("/generate-strategy-context")
async def generate_strategy_context_endpoint(request: StrategyContextRequest, raw_request: Request):
    state = raw_request.app.state
    return StreamingResponse(
        strategy_context_event_generator(state.clients, request, state.dispatcher),
        media_type="text/event-stream"
    )


@app.post("/extract-structured-output")
async def extract_structured_output_endpoint(request: ExtractionRequest, raw_request: Request):
    clients = raw_request.app.state.clients
    structured = await extract_structured_output(
        clients.extraction_llm,
        request.markdown,
        request.researchData,
        timeout=clients.settings.formatter_timeout,
    )
    return {"structuredOutput": structured.model_dump(exclude_none=True) if structured is not None else None}


@app.get("/health")
async def health_check():
    return {"status": "ok"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
