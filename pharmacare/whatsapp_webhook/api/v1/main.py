###############################################################################
# Entrypoint for the PharmaCare WhatsApp Webhook
###############################################################################

# Built-in imports
import os

# External imports
from mangum import Mangum
from fastapi import FastAPI

# Own imports
from pharmacare import __version__
from pharmacare.whatsapp_webhook.api.v1.routers import webhook

# Environment used to dynamically load the FastAPI docs with stages
ENVIRONMENT = os.environ.get("ENVIRONMENT")
API_PREFIX = "/api/v1"


app = FastAPI(
    title="PharmaCare WhatsApp Bot API",
    description="Webhook that drives the PharmaCare WhatsApp ordering conversation",
    version=__version__,
    root_path=f"/{ENVIRONMENT}" if ENVIRONMENT else "",
    docs_url=f"{API_PREFIX}/docs",
    openapi_url=f"{API_PREFIX}/docs/openapi.json",
)


app.include_router(webhook.router, prefix=API_PREFIX)
# Meta apps configured with the bare "/webhook" callback URL
app.include_router(webhook.router, include_in_schema=False)

# This is the Lambda Function's entrypoint (handler)
handler = Mangum(app)
