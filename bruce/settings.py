"""
Configuración de la aplicación mediante variables de entorno.

Este módulo define las dataclasses de configuración para los servicios externos
y proporciona la función `load_settings()` para cargar la configuración desde .env.

Servicios configurables:
    - MongoDB: Base de datos documental (usuarios, cultivos, tareas, notas)
    - JWT: Secreto y algoritmo de firma de sesiones
    - MercadoPago: Checkout de suscripciones y webhooks de pago
    - Cloudinary: Hosting de imágenes de la galería
    - Chat: Webhook del flujo de IA (n8n u otro motor de workflows)

Uso:
    from bruce.settings import load_settings

    settings = load_settings()  # Carga desde .env
    settings = load_settings("ruta/a/.env.local")  # Carga desde archivo específico

    # Acceso seguro para logs (oculta credentials)
    logger.info("settings.loaded", **asdict(settings.masked()))

Variables de entorno soportadas:
    - MONGODB_*, JWT_*, MERCADOPAGO_*, CLOUDINARY_*, CHAT_WEBHOOK_URL, APP_ENV, BASE_URL
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv, find_dotenv


PRODUCTION_ENVS = ("production", "prod", "staging")


# =============================================================================
# DATACLASSES DE CONFIGURACIÓN
# =============================================================================

@dataclass
class MongoSettings:
    """
    Configuración para MongoDB.

    Attributes:
        uri: URI de conexión (mongodb:// o mongodb+srv://)
        database: Nombre de la base de datos compartida
        timeout_ms: Timeout de selección de servidor en milisegundos
    """
    uri: str
    database: str
    timeout_ms: int = 5000

    def masked(self) -> "MongoSettings":
        """Retorna una copia con la URI enmascarada para logging seguro."""
        return MongoSettings(mask(self.uri, prefix=10), self.database, self.timeout_ms)


@dataclass
class AuthSettings:
    """
    Configuración de sesiones JWT.

    Attributes:
        jwt_secret: Secreto de firma (JWT_SECRET o JWT_SECRET_KEY)
        algorithm: Algoritmo de firma (default: HS256)
        allow_fake_tokens: Acepta tokens legacy "fake-" (solo fuera de producción)
    """
    jwt_secret: Optional[str]
    algorithm: str = "HS256"
    allow_fake_tokens: bool = False

    def masked(self) -> "AuthSettings":
        return AuthSettings(mask(self.jwt_secret), self.algorithm, self.allow_fake_tokens)


@dataclass
class MercadoPagoSettings:
    """
    Configuración para MercadoPago.

    Attributes:
        access_token: Token privado de la cuenta (requerido para crear preferencias)
        public_key: Clave pública para el frontend
        webhook_secret: Secreto de firma de notificaciones (opcional)
    """
    access_token: Optional[str]
    public_key: Optional[str] = None
    webhook_secret: Optional[str] = None

    @property
    def configured(self) -> bool:
        return bool(self.access_token)

    def masked(self) -> "MercadoPagoSettings":
        return MercadoPagoSettings(mask(self.access_token), self.public_key, mask(self.webhook_secret))


@dataclass
class CloudinarySettings:
    """
    Configuración para Cloudinary (upload sin firma mediante preset).

    Attributes:
        cloud_name: Nombre de la cuenta
        upload_preset: Preset unsigned configurado en la consola
        folder: Carpeta destino de la galería
    """
    cloud_name: Optional[str]
    upload_preset: Optional[str]
    folder: str = "bruce-galeria"

    @property
    def configured(self) -> bool:
        return bool(self.cloud_name and self.upload_preset)

    def masked(self) -> "CloudinarySettings":
        return CloudinarySettings(self.cloud_name, mask(self.upload_preset), self.folder)


@dataclass
class ChatSettings:
    """Webhook del asistente IA."""
    webhook_url: Optional[str]
    timeout_seconds: float = 30.0

    def masked(self) -> "ChatSettings":
        return ChatSettings(mask(self.webhook_url, prefix=12), self.timeout_seconds)


@dataclass
class AppSettings:
    """
    Configuración completa de la aplicación.

    Agrupa la configuración de todos los servicios más el entorno de ejecución.
    """
    mongo: MongoSettings
    auth: AuthSettings
    mercadopago: MercadoPagoSettings
    cloudinary: CloudinarySettings
    chat: ChatSettings
    app_env: str = "development"
    base_url: str = "http://localhost:3000"

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() in PRODUCTION_ENVS

    def masked(self) -> "AppSettings":
        """Retorna una copia con todas las credentials enmascaradas para logging seguro."""
        return AppSettings(
            mongo=self.mongo.masked(),
            auth=self.auth.masked(),
            mercadopago=self.mercadopago.masked(),
            cloudinary=self.cloudinary.masked(),
            chat=self.chat.masked(),
            app_env=self.app_env,
            base_url=self.base_url,
        )


# =============================================================================
# FUNCIONES AUXILIARES
# =============================================================================

def mask(value: Optional[str], prefix: int = 4) -> str:
    """
    Enmascara un valor sensible para logging seguro.

    Example:
        >>> mask("APP_USR-1234567890-abcdef")
        'APP_...cdef'
    """
    if not value:
        return "****"
    if len(value) <= prefix * 2:
        return "****"
    return f"{value[:prefix]}...{value[-prefix:]}"


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def current_env() -> str:
    """Entorno activo (APP_ENV), leído en runtime."""
    return os.getenv("APP_ENV", "development").strip().lower() or "development"


def is_production_env() -> bool:
    return current_env() in PRODUCTION_ENVS


def load_settings(env_file: Optional[str | os.PathLike[str]] = None) -> AppSettings:
    """
    Carga la configuración desde variables de entorno.

    Args:
        env_file: Ruta opcional al archivo .env. Si no se especifica,
                  busca automáticamente en el directorio actual.

    Returns:
        AppSettings con toda la configuración cargada
    """
    if env_file:
        load_dotenv(env_file, override=True)
    else:
        dotenv_path = find_dotenv(usecwd=True)
        if dotenv_path:
            load_dotenv(dotenv_path, override=True)

    mongo = MongoSettings(
        uri=os.getenv("MONGODB_URI", "mongodb://localhost:27017"),
        database=os.getenv("MONGODB_DB", "bruce-app"),
        timeout_ms=int(os.getenv("MONGODB_TIMEOUT_MS", "5000")),
    )

    # Soporta JWT_SECRET y JWT_SECRET_KEY
    auth = AuthSettings(
        jwt_secret=os.getenv("JWT_SECRET") or os.getenv("JWT_SECRET_KEY"),
        algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        allow_fake_tokens=_env_flag("ALLOW_FAKE_TOKENS"),
    )

    mercadopago = MercadoPagoSettings(
        access_token=os.getenv("MERCADOPAGO_ACCESS_TOKEN"),
        public_key=os.getenv("MERCADOPAGO_PUBLIC_KEY"),
        webhook_secret=os.getenv("MERCADOPAGO_WEBHOOK_SECRET"),
    )

    cloudinary = CloudinarySettings(
        cloud_name=os.getenv("CLOUDINARY_CLOUD_NAME"),
        upload_preset=os.getenv("CLOUDINARY_UPLOAD_PRESET"),
        folder=os.getenv("CLOUDINARY_FOLDER", "bruce-galeria"),
    )

    chat = ChatSettings(
        webhook_url=os.getenv("CHAT_WEBHOOK_URL") or os.getenv("N8N_WEBHOOK_URL"),
        timeout_seconds=float(os.getenv("CHAT_TIMEOUT_SECONDS", "30")),
    )

    return AppSettings(
        mongo=mongo,
        auth=auth,
        mercadopago=mercadopago,
        cloudinary=cloudinary,
        chat=chat,
        app_env=current_env(),
        base_url=os.getenv("BASE_URL", "http://localhost:3000").rstrip("/"),
    )
