"""
Dependencias FastAPI de configuración y clientes externos.

Los tests las reemplazan con `app.dependency_overrides`.
"""

import os
from functools import lru_cache

from bruce.chat_proxy import ChatProxy
from bruce.media_upload import MediaUploader
from bruce.payments import MercadoPagoClient
from bruce.settings import AppSettings, load_settings


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    env_file = os.getenv("APP_ENV_FILE")
    return load_settings(env_file)


def get_payment_client() -> MercadoPagoClient:
    return MercadoPagoClient(get_settings())


def get_chat_proxy() -> ChatProxy:
    return ChatProxy(get_settings().chat)


def get_media_uploader() -> MediaUploader:
    return MediaUploader(get_settings().cloudinary)
