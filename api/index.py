"""
Serverless entry point for the CampusDesk API
"""
import os

# Set environment variables for serverless
os.environ.setdefault("ENVIRONMENT", "production")
os.environ.setdefault("SLA_CONFIG_PATH", "/tmp/sla_config.yaml")
os.environ.setdefault("SLA_CONFIG_WATCH", "false")
# Scans and flushes are driven by /cron in serverless
os.environ.setdefault("ESCALATION_INTERVAL_SECONDS", "0")
os.environ.setdefault("OUTBOX_INTERVAL_SECONDS", "0")

from mangum import Mangum

from campusdesk.main import app

# Lambda handler for ASGI app (disable lifespan for serverless)
handler = Mangum(app, lifespan="off")
