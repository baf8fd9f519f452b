from fastapi import Request

from app.config import settings
from app.services.google_oauth import GoogleOAuthClient
from app.services.paystack import PaystackClient


def get_paystack(request: Request) -> PaystackClient:
    client = getattr(request.app.state, "paystack", None)
    if client is None:
        client = PaystackClient.from_settings(settings)
        request.app.state.paystack = client
    return client


def get_google(request: Request) -> GoogleOAuthClient:
    client = getattr(request.app.state, "google", None)
    if client is None:
        client = GoogleOAuthClient.from_settings(settings)
        request.app.state.google = client
    return client
