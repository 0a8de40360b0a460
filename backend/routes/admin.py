"""Admin portal routes — login, logout and the session-guarded assistant."""

import asyncio
import logging

from fastapi import APIRouter, Depends, Header, Request
from pydantic import BaseModel

from errors import DashboardError, MissingInputError
from services import llm_client
from services.admin_auth import AdminAuthenticator, client_id_from_headers

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])

CHAT_HISTORY_LIMIT = 10

ASSISTANT_PROMPT = (
    "You are a helpful AI assistant for a crypto/web3 tools dashboard. You help the admin "
    "manage developer notes and answer questions.\n\n"
    "Current context:\n{context}\n\n"
    "Keep responses concise and helpful. You can help with:\n"
    "- Editing/improving developer notes (use #1, #2 etc to reference specific notes)\n"
    "- Answering questions about the tools or features\n"
    "- Suggesting improvements\n"
    "- General assistance\n\n"
    "If the user wants to edit notes, tell them to reference specific notes with # "
    '(e.g., "make #1 shorter" or "edit all notes to be more concise").'
)


class AuthRequest(BaseModel):
    sessionToken: str | None = None
    adminKey: str | None = None
    secret: str | None = None


class ChatMessage(BaseModel):
    role: str
    content: str


class ChatRequest(BaseModel):
    message: str = ""
    chatHistory: list[ChatMessage] = []
    context: str | None = None


def get_authenticator(request: Request) -> AdminAuthenticator:
    return request.app.state.authenticator


def require_admin_session(
    x_admin_session: str | None = Header(None),
    authenticator: AdminAuthenticator = Depends(get_authenticator),
) -> str:
    authenticator.require_session(x_admin_session)
    return x_admin_session


@router.post("/auth")
async def authenticate(
    request: Request,
    body: AuthRequest | None = None,
    authenticator: AdminAuthenticator = Depends(get_authenticator),
) -> dict:
    """Exchange the admin key for a session token, or check an existing token."""
    body = body or AuthRequest()
    return authenticator.authenticate(
        client_id_from_headers(request.headers),
        session_token=body.sessionToken,
        secret=body.adminKey or body.secret,
    )


@router.post("/logout")
async def logout(
    x_admin_session: str | None = Header(None),
    authenticator: AdminAuthenticator = Depends(get_authenticator),
) -> dict:
    authenticator.logout(x_admin_session)
    return {"success": True}


@router.post("/chat")
async def chat(body: ChatRequest, _session: str = Depends(require_admin_session)) -> dict:
    """Admin assistant backed by an OpenAI-compatible chat model."""
    if not body.message.strip():
        raise MissingInputError("Missing message")

    messages = [
        {
            "role": "system",
            "content": ASSISTANT_PROMPT.format(
                context=body.context or "Admin dashboard - Developer Notes section"
            ),
        }
    ]
    for msg in body.chatHistory[-CHAT_HISTORY_LIMIT:]:
        if msg.role in ("user", "assistant"):
            messages.append({"role": msg.role, "content": msg.content})
    messages.append({"role": "user", "content": body.message})

    try:
        response = await asyncio.to_thread(llm_client.complete, messages=messages, max_tokens=500)
    except Exception as e:
        logger.exception("Admin chat completion failed")
        raise DashboardError("Failed to process chat", status_code=500) from e

    return {"response": response.strip() or "Sorry, I could not generate a response."}
