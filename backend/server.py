"""
Solar CRM - API Backend
Moteur d'alertes SLA / conformité

Démarre avec:
    uvicorn server:app --host 0.0.0.0 --port 8001 --reload
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from config import CORS_ORIGINS, ALERT_ENGINE_ENABLED

# Configuration logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("solar_crm")

# Créer l'app
app = FastAPI(
    title="Solar CRM",
    description="Alertes SLA et conformité opérationnelle",
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

from routes import auth, alerts

# Routes avec préfixe /api
app.include_router(auth.router, prefix="/api")
app.include_router(alerts.router, prefix="/api")

# ==================== ROUTE RACINE ====================

@app.get("/")
async def root():
    from services.alert_store import alert_store
    return {
        "name": "Solar CRM API",
        "version": "1.0.0",
        "status": "running",
        "alerts_state": alert_store.state,
        "docs": "/docs"
    }


# ==================== STARTUP ====================

@app.on_event("startup")
async def startup():
    logger.info("Solar CRM démarré")

    from config import db
    from scheduler_service import alert_scheduler

    # Index sur les collections
    await db.sla_alerts.create_index("id", unique=True)
    await db.settings.create_index("key", unique=True)
    await db.sessions.create_index("token")
    await db.event_log.create_index("created_at")
    await db.inventory_movements.create_index("item_id")

    logger.info("Index MongoDB créés")

    if ALERT_ENGINE_ENABLED:
        await alert_scheduler.activate()


@app.on_event("shutdown")
async def shutdown():
    from config import client
    from scheduler_service import alert_scheduler

    alert_scheduler.stop()
    client.close()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
