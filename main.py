import sys
import os
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from modules.shared.db import init_db, close_db, ping
from modules.shared.schema import create_tables
from modules.shared.response import success_response
from modules.auth.router import router as auth_router
from modules.incidents.router import router as incidents_router
from modules.chat.router import router as chat_router
from modules.rewards.router import router as rewards_router
from dotenv import load_dotenv

load_dotenv()

app = FastAPI(title="Emergency Reporting API")

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router, prefix="/api/auth")
app.include_router(incidents_router, prefix="/api/incidents")
app.include_router(chat_router, prefix="/api/chat")
app.include_router(rewards_router, prefix="/api/rewards")

@app.get("/api/health")
async def health():
    """Reachability probe used by device connectivity checks; any answer means the API is up"""
    return success_response({"ok": True, "database": await ping()}, "Healthy")

@app.on_event("startup")
async def startup_event():
    """Initialize database pool and tables on startup"""
    await init_db()
    await create_tables()

@app.on_event("shutdown")
async def shutdown_event():
    await close_db()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
