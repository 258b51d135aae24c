"""
FastAPI application entry point.

Run with: uvicorn api.main:app --reload
"""
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

# Load environment variables from backend/.env (optional) before other imports that read env
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(env_path)

from api.routes import screen
from api.screens import reset_screen


class PrivateNetworkAccessMiddleware(BaseHTTPMiddleware):
    """Middleware to handle Private Network Access preflight requests."""

    async def dispatch(self, request: Request, call_next):
        # Handle preflight for Private Network Access
        if request.method == "OPTIONS":
            response = Response(status_code=204)
            response.headers["Access-Control-Allow-Origin"] = "*"
            response.headers["Access-Control-Allow-Methods"] = "*"
            response.headers["Access-Control-Allow-Headers"] = "*"
            response.headers["Access-Control-Allow-Private-Network"] = "true"
            return response

        response = await call_next(request)
        response.headers["Access-Control-Allow-Private-Network"] = "true"
        return response


# Create app
app = FastAPI(
    title="Map Explorer API",
    description="Place search, directions and street-level previews on a single map screen",
    version="0.1.0",
)

# Private Network Access middleware (must be before CORS)
app.add_middleware(PrivateNetworkAccessMiddleware)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure properly for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(screen.router, prefix="/screen", tags=["screen"])


@app.on_event("shutdown")
def shutdown_event():
    """Tear down the map screen; its state is not kept."""
    reset_screen()


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "Map Explorer API"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}
