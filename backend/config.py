"""
Configuration et utilitaires partagés
"""

import os
from datetime import datetime, timezone
from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
from pathlib import Path

# Charger .env
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# MongoDB
MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'solar_crm')

client = AsyncIOMotorClient(MONGO_URL)
db = client[DB_NAME]

# Scheduler
SCHEDULER_TIMEZONE = os.environ.get('SCHEDULER_TIMEZONE', 'America/Sao_Paulo')
ALERT_REFRESH_MINUTES = int(os.environ.get('ALERT_REFRESH_MINUTES', '10'))
ALERT_ENGINE_ENABLED = os.environ.get('ALERT_ENGINE_ENABLED', 'true').lower() in ('1', 'true', 'yes')

CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')


# ==================== HELPERS ====================

def now_iso() -> str:
    """Retourne la date/heure actuelle en ISO"""
    return datetime.now(timezone.utc).isoformat()
