from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from speechwriter_backend.analysis_api import router as analysis_router
from speechwriter_backend.humanization_api import router as humanization_router
from speechwriter_backend.quality_gate_api import router as quality_gate_router

# fastapi app
speechwriter_app = FastAPI(title="Speechwriter Humanization Backend")

# Configure CORS
speechwriter_app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
speechwriter_app.include_router(humanization_router)
speechwriter_app.include_router(analysis_router)
speechwriter_app.include_router(quality_gate_router)
