#!/usr/bin/env python3
"""
dev-server.py - Local development server for the simulation engine.

Exposes graph building and simulation runs to the editor during development.
Run: python dev-server.py
"""
from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
import logging
import sys
import os

# Make the raysim package importable when run from a checkout
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from raysim.api_handlers import handle_build_graph, handle_simulate

logging.basicConfig(
    level=os.environ.get("RAYSIM_LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Read configuration from environment
FRONTEND_PORT = os.environ.get("VITE_PORT", "5173")
ALLOWED_ORIGINS = os.environ.get(
    "ALLOWED_ORIGINS",
    f"http://localhost:{FRONTEND_PORT},http://127.0.0.1:{FRONTEND_PORT}"
).split(",")

app = FastAPI(
    title="raysim Simulation Engine (Local Dev)",
    version="0.1.0",
    description="Local development server for Monte Carlo graph simulation"
)

# CORS configuration from environment
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Health check
@app.get("/")
@app.get("/api")
def health():
    return {
        "status": "ok",
        "service": "raysim",
        "env": "local"
    }


@app.post("/api/simulate/build")
async def build_graph_endpoint(request: Request):
    """
    Build and validate a simulation graph from editor state.

    Request: { "nodes": [...], "edges": [...], "variables"?: {...}, "strict"?: bool }
    Response: { "graph": {...}, "root": "...", "stats": {...} }
    """
    try:
        data = await request.json()
        return handle_build_graph(data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/simulate/run")
async def simulate_endpoint(request: Request):
    """
    Build a graph and run a simulation batch to completion.

    Request: { "nodes": [...], "edges": [...], "rays"?: int, "frontierSize"?: int }
    Response: { "results": {...}, "stats": {...}, "nodes": [...], "outputs": [...] }
    """
    try:
        data = await request.json()
        return await handle_simulate(data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


if __name__ == "__main__":
    import uvicorn

    # Read port from environment variable, default to 9000
    port = int(os.environ.get("PYTHON_API_PORT", "9000"))

    print("")
    print("🚀 raysim Simulation Server")
    print("━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━")
    print(f"📍 Server:     http://localhost:{port}")
    print(f"📖 API Docs:   http://localhost:{port}/docs")
    print("🔄 Auto-reload enabled")
    print("")
    print("Available endpoints:")
    print("  GET  /                     - Health check")
    print("  POST /api/simulate/build   - Build + validate graph from editor state")
    print("  POST /api/simulate/run     - Run a simulation batch, return final snapshot")
    print("━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━")
    print(f"💡 Port: {port} (set via PYTHON_API_PORT env var)")
    print("━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━")
    print("")

    uvicorn.run(
        "dev-server:app",
        host="0.0.0.0",
        port=port,
        reload=True,
        log_level="info"
    )
