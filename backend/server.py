"""
Abeille Réunion - API Backend
Communications adhérents, préférences, paramètres annuels, actualités

Démarre avec:
    uvicorn server:app --host 0.0.0.0 --port 8001 --reload
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from config import db, client, CORS_ORIGINS, SCHEDULER_ENABLED

# Configuration logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("abeille")

# Créer l'app
app = FastAPI(
    title="Abeille Réunion",
    description="Back-office des associations apicoles SAR / AMAIR",
    version="1.0.0"
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ==================== IMPORT DES ROUTES ====================

from routes import auth, communications, preferences, parametres, articles

# Routes avec préfixe /api
app.include_router(auth.router, prefix="/api")
app.include_router(communications.router, prefix="/api")
app.include_router(preferences.router, prefix="/api")
app.include_router(parametres.router, prefix="/api")
app.include_router(articles.router, prefix="/api")

task_scheduler = None


# ==================== ROUTE RACINE ====================

@app.get("/")
async def root():
    return {
        "name": "Abeille Réunion API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs"
    }


# ==================== STARTUP / SHUTDOWN ====================

async def create_indexes(database):
    await database.users.create_index("email", unique=True)
    await database.sessions.create_index("token")
    await database.sessions.create_index("expires_at")
    await database.preferences.create_index("user", unique=True)
    await database.adhesions.create_index([("user", 1), ("annee", 1)])
    await database.adhesions.create_index([("organisme", 1), ("annee", 1), ("status", 1)])
    await database.parametres.create_index([("organisme", 1), ("annee", 1)], unique=True)
    await database.communications.create_index([("statut", 1), ("dateProgrammee", 1)])
    await database.articles.create_index("slug", unique=True)
    await database.articles.create_index([("statut", 1), ("datePublication", 1)])
    await database.unaf_exports.create_index("dateExport", unique=True)


@app.on_event("startup")
async def startup():
    global task_scheduler
    logger.info("🚀 Abeille Réunion API démarrée")

    await create_indexes(db)
    logger.info("✅ Index MongoDB créés")

    if SCHEDULER_ENABLED:
        from scheduler_service import TaskScheduler
        task_scheduler = TaskScheduler(db, communications.get_dispatcher())
        task_scheduler.start()
    else:
        logger.info("Scheduler désactivé (SCHEDULER_ENABLED=false)")


@app.on_event("shutdown")
async def shutdown():
    if task_scheduler:
        task_scheduler.stop()
    client.close()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
