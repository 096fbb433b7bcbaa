from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sourcerank.api.routes import answer
from sourcerank.config import settings
from sourcerank.services.logger import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    yield


app = FastAPI(
    title="SourceRank",
    description="Retrieval-augmented source ranking with streamed explanations",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes
app.include_router(answer.router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "sourcerank"}
