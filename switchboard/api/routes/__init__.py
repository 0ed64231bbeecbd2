"""API routes."""

from fastapi import APIRouter

from switchboard.api.routes import (
    agent,
    auth,
    channels,
    contacts,
    lead_webhooks,
    messages,
    tags,
    whatsapp_webhooks,
    widget,
)

api_router = APIRouter()

# Public routes (no agent session)
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(widget.router, prefix="/widget", tags=["widget"])
api_router.include_router(whatsapp_webhooks.router, prefix="/channels", tags=["whatsapp-webhooks"])
api_router.include_router(lead_webhooks.router, prefix="/campaigns", tags=["lead-webhooks"])

# Protected routes (organization membership required)
api_router.include_router(agent.router, prefix="/agent", tags=["agent"])
api_router.include_router(channels.router, prefix="/channels", tags=["channels"])
api_router.include_router(contacts.router, prefix="/contacts", tags=["contacts"])
api_router.include_router(messages.router, prefix="/messages", tags=["messages"])
api_router.include_router(tags.router, prefix="/tags", tags=["tags"])
