"""
Vercel entry point for Raven Dispatch API
"""
import os

# Set environment variables for serverless
os.environ.setdefault("ENVIRONMENT", "production")
os.environ.setdefault("SLA_EVALUATION_INTERVAL", "0")  # No background scheduler in serverless

from mangum import Mangum
from src.main import app

# Lifespan stays on: it builds the database engine and loads the SLA presets
handler = Mangum(app, lifespan="auto")
