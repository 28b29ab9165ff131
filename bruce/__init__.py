"""
Módulo bruce - Núcleo de dominio de Bruce App (gestión de cultivos multi-tenant).

Este paquete implementa la lógica de negocio que exponen los routers de `backend/`:

1. Configuración y logging estructurado
2. Ciclo de vida de la conexión MongoDB
3. Modelos validados (usuarios, cultivos, tareas, notas, comentarios)
4. Filtro multi-tenant y reglas de permisos por rol
5. Adaptadores externos (MercadoPago, webhook de chat IA, hosting de imágenes)

Arquitectura de capas:
    - Configuración: settings.py, logging_config.py, error_handling.py
    - Datos: database.py, models/
    - Reglas: multi_tenancy.py, subscription.py, tenant_context.py
    - Integraciones: payments.py (MercadoPago), chat_proxy.py, media_upload.py
"""

__all__ = [
    # Configuración
    "settings",
    "database",
    # Dominio
    "models",
    "multi_tenancy",
    "subscription",
]
